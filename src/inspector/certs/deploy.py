"""
将证书文件交付到设备或应用目录的状态机。

    WWW:                 STAGING -> DONE
    Android:             PUSHING -> DONE
    Android（win32 主机）: STAGING -> PUSHING -> DONE
    Windows / MacOS:     DIRECT -> DONE | FAILED
    iOS:                 DIRECT -> DONE
                         DIRECT -> RESOLVING_FALLBACK_TARGET -> STAGING -> PUSHING -> DONE

iOS 直接写文件失败通常意味着这是一台真机，此时改用 idb 推送到应用容器内的相对路径。
其他系统写入失败直接报错，不做回退。
"""

from __future__ import annotations

import asyncio
import os
import posixpath
from enum import Enum

from loguru import logger

from .errors import CSRValidationError, DeploymentError, DeviceResolutionError
from .parsing import relative_path_in_app_container
from .schemas import CertificateExchangeMedium, ClientOS
from .session import ProvisioningSession
from .transport import AndroidTransport, IOSTransport


class DeployState(str, Enum):
    DIRECT = "direct"
    RESOLVING_FALLBACK_TARGET = "resolving_fallback_target"
    STAGING = "staging"
    PUSHING = "pushing"
    DONE = "done"
    FAILED = "failed"


_PASSTHROUGH_ERRORS = (DeviceResolutionError, CSRValidationError, DeploymentError)


def _write_file(path: str, data: bytes, make_parents: bool = False) -> None:
    if make_parents:
        os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)


class FileDeployment:
    def __init__(
        self,
        session: ProvisioningSession,
        filename: str,
        contents: str,
        android: AndroidTransport,
        ios: IOSTransport,
        host_platform: str,
    ):
        self.session = session
        self.filename = filename
        self.contents = contents
        self.android = android
        self.ios = ios
        self.host_platform = host_platform

        self.failure: BaseException | None = None
        self.local_path: str | None = None
        self.container_path: str | None = None
        self.state = self._initial_state()

    @property
    def destination(self) -> str:
        return os.path.join(self.session.app_directory, self.filename)

    def _initial_state(self) -> DeployState:
        os_kind = self.session.os
        if self.session.medium == CertificateExchangeMedium.WWW:
            return DeployState.STAGING
        if os_kind == ClientOS.ANDROID:
            return DeployState.STAGING if self.host_platform == "win32" else DeployState.PUSHING
        if os_kind in (ClientOS.IOS, ClientOS.WINDOWS, ClientOS.MACOS):
            return DeployState.DIRECT
        self.failure = DeploymentError(f"Unsupported device os: {getattr(os_kind, 'value', os_kind)}")
        return DeployState.FAILED

    async def run(self) -> None:
        handlers = {
            DeployState.DIRECT: self._write_direct,
            DeployState.RESOLVING_FALLBACK_TARGET: self._resolve_fallback_target,
            DeployState.STAGING: self._stage,
            DeployState.PUSHING: self._push,
        }
        while self.state not in (DeployState.DONE, DeployState.FAILED):
            current = self.state
            try:
                self.state = await handlers[current]()
            except _PASSTHROUGH_ERRORS as e:
                self._fail(e)
            except Exception as e:
                self._fail(DeploymentError(self._describe(current, e)), cause=e)
            logger.debug(f"{self.filename}: {current.value} -> {self.state.value}")

        if self.state == DeployState.FAILED:
            raise self.failure or DeploymentError(f"Failed to deploy {self.filename}")

    def _fail(self, error: BaseException, cause: BaseException | None = None) -> None:
        if cause is not None:
            error.__cause__ = cause
        self.failure = error
        self.state = DeployState.FAILED

    def _describe(self, state: DeployState, error: BaseException) -> str:
        os_name = self.session.os.value
        if state == DeployState.STAGING and self.session.medium == CertificateExchangeMedium.WWW:
            return f"Failed to write {self.filename} to temporary folder. Error: {error}"
        return (
            f"Failed to deploy {self.filename} to {os_name} device "
            f"({self.session.app_directory}): {error}"
        )

    async def _write_direct(self) -> DeployState:
        try:
            await asyncio.to_thread(_write_file, self.destination, self.contents.encode("utf-8"))
        except OSError as e:
            if self.session.os == ClientOS.IOS:
                logger.info(f"无法直接写入 {self.destination}，按 iOS 真机处理：{e}")
                return DeployState.RESOLVING_FALLBACK_TARGET
            raise DeploymentError(
                f"Invalid appDirectory received from {self.session.os.value} device: "
                f"{self.destination}: {e}"
            ) from e
        return DeployState.DONE

    async def _resolve_fallback_target(self) -> DeployState:
        self.container_path = relative_path_in_app_container(self.session.app_directory)
        await self.session.device_id()
        return DeployState.STAGING

    async def _stage(self) -> DeployState:
        local_path = os.path.join(self.session.staging_dir, self.filename)
        await asyncio.to_thread(
            _write_file, local_path, self.contents.encode("utf-8"), make_parents=True
        )
        self.local_path = local_path
        if self.session.medium == CertificateExchangeMedium.WWW:
            return DeployState.DONE
        return DeployState.PUSHING

    async def _push(self) -> DeployState:
        app_name = await self.session.app_name()
        device_id = await self.session.device_id()
        if self.session.os == ClientOS.IOS:
            if self.local_path is None or self.container_path is None:
                raise DeploymentError(
                    f"No staged copy of {self.filename} to push to iOS device {device_id}"
                )
            await self.ios.push(device_id, self.local_path, app_name, self.container_path)
            return DeployState.DONE

        remote_path = posixpath.join(self.session.app_directory, self.filename)
        if self.local_path is not None:
            await self.android.push_file(device_id, app_name, remote_path, self.local_path)
        else:
            await self.android.push(device_id, app_name, remote_path, self.contents.encode("utf-8"))
        return DeployState.DONE


async def deploy_or_stage_file(
    session: ProvisioningSession,
    filename: str,
    contents: str,
    android: AndroidTransport,
    ios: IOSTransport,
    host_platform: str,
) -> None:
    await FileDeployment(session, filename, contents, android, ios, host_platform).run()
