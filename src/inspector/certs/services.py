"""
证书提供服务的业务逻辑层。
此模块持有进程内唯一的 CertificateProvider，供路由层与应用生命周期调用。
"""

from __future__ import annotations

from functools import lru_cache

from .provider import CertificateProvider
from .schemas import CertificateSigningRequestBody, ProvisioningResult, SecureServerConfig


@lru_cache(maxsize=1)
def get_provider() -> CertificateProvider:
    return CertificateProvider()


async def process_csr_service(req: CertificateSigningRequestBody) -> ProvisioningResult:
    """
    处理设备提交 CSR 的业务逻辑。
    :param req: 包含 CSR、客户端系统、应用目录与交付方式的请求对象。
    :return: 包含设备 id 的响应对象。
    :raises ValueError: CSR 不合法。
    :raises RuntimeError: 证书生成、设备定位或交付失败。
    """
    return await get_provider().process_certificate_signing_request(
        req.csr, req.os, req.app_directory, req.medium
    )


async def secure_server_config_service() -> SecureServerConfig:
    """确保服务端证书可用，并返回下游 TLS 服务端使用的配置。"""
    return await get_provider().load_secure_server_config()
