"""
文件功能：
    定义证书提供模块的公开数据模型（Pydantic）。

公开接口：
    - ClientOS: 提交 CSR 的客户端操作系统
    - CertificateExchangeMedium: 证书交付方式
    - DeviceTarget: 已连接的设备 / 模拟器
    - SecureServerConfig: 下游 TLS 服务端使用的证书配置
    - ProvisioningResult: 一次 CSR 处理的结果
    - CertificateSigningRequestBody: HTTP 接口的请求体
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class ClientOS(str, Enum):
    ANDROID = "Android"
    IOS = "iOS"
    WINDOWS = "Windows"
    MACOS = "MacOS"


class CertificateExchangeMedium(str, Enum):
    FS_ACCESS = "FS_ACCESS"
    WWW = "WWW"


class DeviceTarget(BaseModel):
    """通过 adb / idb 发现的连接目标。"""

    id: str = Field(description="adb serial 或 iOS UDID")
    os: ClientOS = Field(description="目标所属平台")
    name: str | None = Field(default=None, description="设备名称（如可获取）")


class SecureServerConfig(BaseModel):
    """双向 TLS 服务端所需的私钥、证书与 CA 证书。"""

    key: bytes
    cert: bytes
    ca: bytes
    request_cert: bool = True
    reject_unauthorized: bool = True


class ProvisioningResult(BaseModel):
    device_id: str = Field(description="提交 CSR 的设备标识；WWW 方式下为随机 UUID")


class CertificateSigningRequestBody(BaseModel):
    """
    设备上的应用提交 CSR 时的请求体。
    """
    csr: str  # PEM 格式的 CSR 文本
    os: ClientOS
    app_directory: str  # 应用在设备上可写的目录，以 / 结尾
    medium: CertificateExchangeMedium = CertificateExchangeMedium.FS_ACCESS
