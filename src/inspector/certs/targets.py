"""
确定 CSR 来自哪一台已连接的设备。

做法是从每台候选设备的应用目录中拉取应用之前写下的 app.csr，清洗后与收到的 CSR 比较：
所有设备的拉取并发进行，单台设备失败只记录为该设备自己的结果，全部完成后再统一判定。
"""

from __future__ import annotations

import asyncio
import os
import posixpath
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence
from urllib.parse import quote

from loguru import logger

from .csr import sanitize
from .errors import DeviceResolutionError
from .parsing import relative_path_in_app_container, simulator_id_from_path
from .schemas import ClientOS
from .transport import AndroidTransport, IOSTransport

CSR_FILE_NAME = "app.csr"


@dataclass(frozen=True)
class MatchOutcome:
    id: str
    is_match: bool
    found_csr: str | None = None
    error: BaseException | None = None


def select_matching_device(app_name: str, csr: str, outcomes: Sequence[MatchOutcome]) -> str:
    """
    根据所有设备的比较结果选出目标设备。
    - 没有匹配：若有设备出错，抛出第一个错误（它可能就是没有匹配的原因），否则报告未找到；
    - 多个匹配：记录告警后取第一个；
    - 恰好一个匹配：返回其 id。
    """
    matching_ids = [o.id for o in outcomes if o.is_match]
    if not matching_ids:
        errored = next((o for o in outcomes if o.error is not None), None)
        if errored is not None:
            raise errored.error
        found_csrs = [quote(o.found_csr, safe="") for o in outcomes if o.found_csr is not None]
        logger.error(
            "Looking for CSR (url encoded):\n\n"
            f"{quote(sanitize(csr), safe='')}\n\n"
            "Found these:\n\n"
            + "\n\n".join(found_csrs)
        )
        raise DeviceResolutionError(f"No matching device found for app: {app_name}")
    if len(matching_ids) > 1:
        logger.warning(f"More than one matching device found for CSR:\n{csr}")
    return matching_ids[0]


class DeviceTargetResolver:
    def __init__(self, android: AndroidTransport, ios: IOSTransport):
        self.android = android
        self.ios = ios

    async def resolve(self, os_kind: ClientOS, app_name: str, app_directory: str, csr: str) -> str:
        if os_kind == ClientOS.ANDROID:
            return await self.resolve_android(app_name, app_directory, csr)
        if os_kind == ClientOS.IOS:
            return await self.resolve_ios(app_name, app_directory, csr)
        if os_kind == ClientOS.MACOS:
            return ""
        return "unknown"

    async def resolve_android(self, app_name: str, app_directory: str, csr: str) -> str:
        devices = await self.android.list_online_targets()
        if not devices:
            raise DeviceResolutionError("No Android devices found")
        outcomes = await asyncio.gather(
            *(self._check_android_device(d.id, app_name, app_directory, csr) for d in devices)
        )
        return select_matching_device(app_name, csr, outcomes)

    async def resolve_ios(self, app_name: str, app_directory: str, csr: str) -> str:
        simulator_id = simulator_id_from_path(app_directory)
        if simulator_id:
            return simulator_id
        targets = await self.ios.list_targets()
        if not targets:
            raise DeviceResolutionError("No iOS devices found")
        outcomes = await asyncio.gather(
            *(self._check_ios_device(t.id, app_name, app_directory, csr) for t in targets)
        )
        return select_matching_device(app_name, csr, outcomes)

    async def _check_android_device(
        self, device_id: str, app_name: str, app_directory: str, csr: str
    ) -> MatchOutcome:
        try:
            data = await self.android.pull(
                device_id, app_name, posixpath.join(app_directory, CSR_FILE_NAME)
            )
        except Exception as e:
            logger.error(f"Unable to check for matching CSR in {device_id}:{app_name}: {e}")
            return MatchOutcome(id=device_id, is_match=False, error=e)
        found = sanitize(data.decode("utf-8", errors="replace"))
        return MatchOutcome(id=device_id, is_match=found == sanitize(csr), found_csr=found)

    async def _check_ios_device(
        self, device_id: str, app_name: str, app_directory: str, csr: str
    ) -> MatchOutcome:
        try:
            found = await self._pull_ios_csr(device_id, app_name, app_directory)
        except Exception as e:
            logger.error(f"Unable to check for matching CSR in {device_id}:{app_name}: {e}")
            return MatchOutcome(id=device_id, is_match=False, error=e)
        return MatchOutcome(id=device_id, is_match=found == sanitize(csr), found_csr=found)

    async def _pull_ios_csr(self, device_id: str, bundle_id: str, app_directory: str) -> str:
        original_file = relative_path_in_app_container(
            posixpath.normpath(posixpath.join(app_directory, CSR_FILE_NAME))
        )
        with tempfile.TemporaryDirectory() as tmpdir:
            await self.ios.pull(
                device_id, original_file, bundle_id, os.path.join(tmpdir, CSR_FILE_NAME)
            )
            items = os.listdir(tmpdir)
            if len(items) > 1:
                raise DeviceResolutionError("Conflict in temp dir")
            if not items:
                raise DeviceResolutionError("Failed to pull CSR from device")
            data = Path(tmpdir, items[0]).read_text(encoding="utf-8", errors="replace")
        return sanitize(data)
