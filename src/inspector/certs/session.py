"""
一次 CSR 处理过程中的状态。

应用名与目标设备 id 在首次需要时才解析，并在本次会话内缓存，
这样 CA 证书与客户端证书两次交付以及最终结果共用同一次设备匹配。
会话之间不共享任何可变状态。
"""

from __future__ import annotations

from pathlib import Path

from .csr import CSRProcessor
from .schemas import CertificateExchangeMedium, ClientOS
from .targets import DeviceTargetResolver


class ProvisioningSession:
    def __init__(
        self,
        csr: str,
        os_kind: ClientOS,
        app_directory: str,
        medium: CertificateExchangeMedium,
        staging_dir: Path,
        csr_processor: CSRProcessor,
        resolver: DeviceTargetResolver,
    ):
        self.csr = csr
        self.os = os_kind
        self.app_directory = app_directory
        self.medium = medium
        self.staging_dir = staging_dir
        self._csr_processor = csr_processor
        self._resolver = resolver
        self._app_name: str | None = None
        self._device_id: str | None = None

    async def app_name(self) -> str:
        if self._app_name is None:
            self._app_name = await self._csr_processor.extract_app_name(self.csr)
        return self._app_name

    async def device_id(self) -> str:
        if self._device_id is None:
            app_name = await self.app_name()
            self._device_id = await self._resolver.resolve(
                self.os, app_name, self.app_directory, self.csr
            )
        return self._device_id
