"""
设备传输层：Android 通过 adb，iOS 真机通过 idb。

只提供枚举设备、向应用沙盒推送文件、从应用沙盒拉取文件三类能力，
重试与超时由 adb / idb 自身负责。
"""

from __future__ import annotations

import json
import posixpath
import shlex
from pathlib import Path
from typing import Protocol

from loguru import logger

from src.inspector.common.process import CommandError, run_command
from src.inspector.config import config
from .schemas import ClientOS, DeviceTarget

ANDROID_TMP_DIR = "/data/local/tmp"


class AndroidTransport(Protocol):
    async def list_online_targets(self) -> list[DeviceTarget]: ...

    async def pull(self, device_id: str, app_id: str, remote_path: str) -> bytes: ...

    async def push(self, device_id: str, app_id: str, remote_path: str, content: bytes) -> None: ...

    async def push_file(
        self, device_id: str, app_id: str, remote_path: str, local_path: str
    ) -> None: ...


class IOSTransport(Protocol):
    async def list_targets(self) -> list[DeviceTarget]: ...

    async def pull(
        self, device_id: str, container_path: str, app_id: str, local_path: str
    ) -> None: ...

    async def push(
        self, device_id: str, local_path: str, app_id: str, container_path: str
    ) -> None: ...


def parse_adb_devices(output: str) -> list[DeviceTarget]:
    """解析 `adb devices -l`，只保留状态为 device（在线）的条目。"""
    targets = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("List of devices") or line.startswith("*"):
            continue
        parts = line.split()
        if len(parts) < 2 or parts[1] != "device":
            continue
        name = None
        for extra in parts[2:]:
            if extra.startswith("model:"):
                name = extra.split(":", 1)[1]
        targets.append(DeviceTarget(id=parts[0], os=ClientOS.ANDROID, name=name))
    return targets


def parse_idb_targets(output: str) -> list[DeviceTarget]:
    """解析 `idb list-targets --json`（每行一个 JSON 对象），只保留真机。"""
    targets = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except ValueError:
            logger.debug(f"忽略无法解析的 idb 输出行：{line}")
            continue
        if data.get("type") != "device":
            continue
        targets.append(DeviceTarget(id=data["udid"], os=ClientOS.IOS, name=data.get("name")))
    return targets


class AdbTransport:
    def __init__(self, adb_path: str | None = None):
        self.adb = adb_path or config.adb_path

    async def list_online_targets(self) -> list[DeviceTarget]:
        output = await run_command([self.adb, "devices", "-l"])
        return parse_adb_devices(output.decode("utf-8", errors="replace"))

    async def pull(self, device_id: str, app_id: str, remote_path: str) -> bytes:
        # exec-out 不会透传 run-as 的退出码，需要检查输出内容
        command = f"run-as {app_id} cat {shlex.quote(remote_path)}"
        data = await run_command([self.adb, "-s", device_id, "exec-out", command])
        if data.startswith(b"run-as:"):
            raise CommandError(
                [self.adb, "-s", device_id, "exec-out", command],
                1,
                data.decode("utf-8", errors="replace"),
            )
        return data

    async def push(self, device_id: str, app_id: str, remote_path: str, content: bytes) -> None:
        inner = f"cat > {shlex.quote(remote_path)}"
        command = f"run-as {app_id} sh -c {shlex.quote(inner)}"
        await run_command([self.adb, "-s", device_id, "exec-in", command], input=content)
        logger.debug(f"已写入 {device_id}:{app_id}:{remote_path}")

    async def push_file(
        self, device_id: str, app_id: str, remote_path: str, local_path: str
    ) -> None:
        tmp_remote = posixpath.join(ANDROID_TMP_DIR, Path(local_path).name)
        await run_command([self.adb, "-s", device_id, "push", local_path, tmp_remote])
        try:
            command = f"run-as {app_id} cp {shlex.quote(tmp_remote)} {shlex.quote(remote_path)}"
            await run_command([self.adb, "-s", device_id, "shell", command])
        finally:
            await run_command([self.adb, "-s", device_id, "shell", f"rm -f {shlex.quote(tmp_remote)}"])
        logger.debug(f"已通过 {tmp_remote} 写入 {device_id}:{app_id}:{remote_path}")


class IdbTransport:
    def __init__(self, idb_path: str | None = None):
        self.idb = idb_path or config.idb_path

    async def list_targets(self) -> list[DeviceTarget]:
        output = await run_command([self.idb, "list-targets", "--json"])
        return parse_idb_targets(output.decode("utf-8", errors="replace"))

    async def pull(
        self, device_id: str, container_path: str, app_id: str, local_path: str
    ) -> None:
        await run_command(
            [self.idb, "file", "pull", "--udid", device_id, "--bundle-id", app_id,
             container_path, local_path]
        )

    async def push(
        self, device_id: str, local_path: str, app_id: str, container_path: str
    ) -> None:
        await run_command(
            [self.idb, "file", "push", "--udid", device_id, "--bundle-id", app_id,
             local_path, container_path]
        )
        logger.debug(f"已推送 {local_path} 到 {device_id}:{app_id}:{container_path}")
