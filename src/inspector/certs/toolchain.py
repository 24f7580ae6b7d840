"""
OpenSSL 命令行封装。

execute("x509", {"in": path, "noout": True, "enddate": True}) 会被转换为
`openssl x509 -in <path> -noout -enddate`：
- 值为 True 的选项转换为无参数开关；
- 值为 None / False 的选项被忽略；
- 其他值转换为 `-key value`；
- positional 中的参数原样追加在末尾（例如 genrsa 的位数、verify 的证书路径）。
"""

from __future__ import annotations

import shutil
from typing import Any, Mapping, Sequence

from loguru import logger

from src.inspector.common.process import CommandError, run_command
from src.inspector.config import config
from .errors import ToolchainError, ToolchainUnavailableError


OPENSSL_MISSING_MESSAGE = (
    "It looks like you don't have OpenSSL installed globally. "
    "Please install it and add it to Path to continue."
)


def build_openssl_args(
    subcommand: str, options: Mapping[str, Any], positional: Sequence[str] = ()
) -> list[str]:
    args = [subcommand]
    for name, value in options.items():
        if value is None or value is False:
            continue
        args.append(f"-{name}")
        if value is not True:
            args.append(str(value))
    args.extend(str(p) for p in positional)
    return args


def ensure_toolchain_available(toolchain) -> None:
    """OpenSSL 不可用时立即失败，不做任何降级。"""
    if not toolchain.is_available():
        raise ToolchainUnavailableError(OPENSSL_MISSING_MESSAGE)


class OpenSSL:
    """以子进程方式调用 openssl，输出按 UTF-8 文本返回。"""

    def __init__(self, binary: str | None = None):
        self.binary = binary or config.openssl_path

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    async def execute(
        self,
        subcommand: str,
        options: Mapping[str, Any],
        positional: Sequence[str] = (),
    ) -> str:
        cmd = [self.binary, *build_openssl_args(subcommand, options, positional)]
        try:
            output = await run_command(cmd)
        except CommandError as e:
            raise ToolchainError(f"openssl {subcommand} failed: {e.stderr.strip() or e}") from e
        text = output.decode("utf-8", errors="replace")
        logger.trace(f"openssl {subcommand} output: {text}")
        return text
