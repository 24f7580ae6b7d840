"""
异步子进程执行工具。

OpenSSL 封装与 adb / idb 设备传输层都通过这里启动外部命令，
统一捕获 stdout/stderr 并在非零退出码时抛出 CommandError。
"""

from __future__ import annotations

import asyncio
from typing import Sequence

from loguru import logger


class CommandError(RuntimeError):
    """外部命令执行失败（无法启动或退出码非零）。"""

    def __init__(self, cmd: Sequence[str], returncode: int | None, stderr: str):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit code {returncode}"
        super().__init__(f"Command `{' '.join(self.cmd)}` failed: {detail}")


async def run_command(cmd: Sequence[str], *, input: bytes | None = None) -> bytes:
    """
    执行命令并返回 stdout 原始字节。
    :param cmd: 命令及参数列表。
    :param input: 可选，写入子进程 stdin 的数据。
    :return: 子进程 stdout。
    :raises CommandError: 命令不存在或退出码非零。
    """
    logger.debug(f"Executing command: {' '.join(cmd)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandError(cmd, None, str(e)) from e

    stdout, stderr = await proc.communicate(input)
    if proc.returncode != 0:
        error = CommandError(cmd, proc.returncode, stderr.decode("utf-8", errors="replace"))
        logger.debug(str(error))
        raise error
    return stdout
