"""
证书提供者：生成并交付服务端与客户端证书，使网络检查服务与应用之间可以建立双向 TLS。

应用使用自己的密钥对生成 CSR 并提交过来，这里用本机 CA 将其签发为客户端证书，
连同 CA 证书一起安全地交付到应用目录中。应用只信任持有本机 CA 签发证书的服务端。
"""

from __future__ import annotations

import tempfile
import uuid
from pathlib import Path

from loguru import logger

from src.inspector.config import config
from .authority import CAManager
from .csr import CSRProcessor, sanitize
from .deploy import deploy_or_stage_file
from .errors import CSRValidationError
from .schemas import (
    CertificateExchangeMedium,
    ClientOS,
    ProvisioningResult,
    SecureServerConfig,
)
from .session import ProvisioningSession
from .store import CA_CERT, SERVER_CERT, SERVER_KEY, CertificateStore
from .targets import DeviceTargetResolver
from .toolchain import OpenSSL, ensure_toolchain_available
from .transport import AdbTransport, AndroidTransport, IdbTransport, IOSTransport

DEVICE_CA_CERT_FILE = "sonarCA.crt"
DEVICE_CLIENT_CERT_FILE = "device.crt"
STAGING_FOLDER_NAME = "InspectorCerts"


class CertificateProvider:
    def __init__(
        self,
        store: CertificateStore | None = None,
        toolchain: OpenSSL | None = None,
        android: AndroidTransport | None = None,
        ios: IOSTransport | None = None,
        *,
        authority: CAManager | None = None,
        csr_processor: CSRProcessor | None = None,
        host_platform: str | None = None,
    ):
        self.store = store or CertificateStore()
        self.toolchain = toolchain or OpenSSL()
        self.android = android or AdbTransport()
        self.ios = ios or IdbTransport()
        self.authority = authority or CAManager(self.store, self.toolchain)
        self.csr_processor = csr_processor or CSRProcessor(self.store, self.toolchain)
        self.resolver = DeviceTargetResolver(self.android, self.ios)
        self.host_platform = host_platform or config.host_platform

    async def load_secure_server_config(self) -> SecureServerConfig:
        await self.authority.ensure_server_cert_exists()
        return SecureServerConfig(
            key=self.store.read(SERVER_KEY),
            cert=self.store.read(SERVER_CERT),
            ca=self.store.read(CA_CERT),
            request_cert=True,
            reject_unauthorized=True,
        )

    async def process_certificate_signing_request(
        self,
        unsanitized_csr: str,
        os_kind: ClientOS | str,
        app_directory: str,
        medium: CertificateExchangeMedium | str,
    ) -> ProvisioningResult:
        """
        处理设备提交的 CSR：校验 CA 与服务端证书、交付 CA 证书、签发并交付客户端证书，
        最后确定提交 CSR 的设备。
        :return: 设备 id；WWW 方式不需要定位设备，返回随机 UUID。
        :raises CSRValidationError: CSR 为空或应用名不合法。
        :raises ToolchainUnavailableError: 未安装 OpenSSL。
        :raises DeviceResolutionError / DeploymentError: 无法定位设备或写入证书失败。
        """
        csr = sanitize(unsanitized_csr)
        if not csr:
            raise CSRValidationError(
                f"Received empty CSR from {getattr(os_kind, 'value', os_kind)} device"
            )
        os_kind = ClientOS(os_kind)
        medium = CertificateExchangeMedium(medium)
        ensure_toolchain_available(self.toolchain)

        with tempfile.TemporaryDirectory() as root_folder:
            session = ProvisioningSession(
                csr,
                os_kind,
                app_directory,
                medium,
                Path(root_folder) / STAGING_FOLDER_NAME,
                self.csr_processor,
                self.resolver,
            )

            await self.authority.ensure_server_cert_exists()
            ca_cert = self.store.read_text(CA_CERT)
            await self._deploy(session, DEVICE_CA_CERT_FILE, ca_cert)

            client_cert = await self.csr_processor.sign(csr)
            await self._deploy(session, DEVICE_CLIENT_CERT_FILE, client_cert)

            app_name = await session.app_name()
            if medium == CertificateExchangeMedium.FS_ACCESS:
                device_id = await session.device_id()
            else:
                device_id = str(uuid.uuid4())

        logger.info(
            f"已为 {os_kind.value} 应用 {app_name} 签发客户端证书（medium={medium.value}, device={device_id!r}）"
        )
        return ProvisioningResult(device_id=device_id)

    async def _deploy(self, session: ProvisioningSession, filename: str, contents: str) -> None:
        await deploy_or_stage_file(
            session, filename, contents, self.android, self.ios, self.host_platform
        )
