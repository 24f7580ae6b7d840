"""
设备提交的 CSR 的清洗、应用名提取与签名。
"""

from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from typing import Iterator

from loguru import logger

from src.inspector.config import config
from .errors import CSRValidationError
from .parsing import parse_subject_common_name, validate_app_name
from .store import CertificateStore
from .toolchain import OpenSSL


def sanitize(csr: str) -> str:
    """
    去掉所有回车符并裁剪首尾空白。
    不同系统与 openssl 组合输出的 CSR 文本语义相同但字节不同，比较前两边都必须先清洗。
    """
    return csr.replace("\r", "").strip()


@contextmanager
def csr_temp_file(csr: str) -> Iterator[str]:
    """将 CSR 写入临时文件，退出时无论成功失败都删除。"""
    fd, path = tempfile.mkstemp(suffix=".csr")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(csr)
        yield path
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


class CSRProcessor:
    def __init__(
        self,
        store: CertificateStore,
        toolchain: OpenSSL | None = None,
        *,
        validity_days: int | None = None,
    ):
        self.store = store
        self.toolchain = toolchain or OpenSSL()
        self.validity_days = validity_days or config.cert_validity_days

    async def extract_app_name(self, csr: str) -> str:
        """
        从 CSR 主题的 CN 中取出应用标识（Android 包名 / iOS bundle id）。
        :raises CSRValidationError: 找不到 CN 或 CN 含有不允许的字符。
        """
        with csr_temp_file(csr) as path:
            subject = await self.toolchain.execute(
                "req",
                {"in": path, "noout": True, "subject": True, "nameopt": "RFC2253"},
            )
        app_name = validate_app_name(parse_subject_common_name(subject))
        logger.debug(f"CSR 中的应用名：{app_name}")
        return app_name

    async def sign(self, csr: str) -> str:
        """
        使用当前 CA 将 CSR 签发为客户端证书。
        :return: PEM 格式的客户端证书文本。
        """
        csr = sanitize(csr)
        if not csr:
            raise CSRValidationError("Received empty CSR from device")
        with csr_temp_file(csr) as path:
            return await self.toolchain.execute(
                "x509",
                {
                    "req": True,
                    "in": path,
                    "CA": str(self.store.ca_cert),
                    "CAkey": str(self.store.ca_key),
                    "CAcreateserial": True,
                    "CAserial": str(self.store.server_srl),
                    "days": self.validity_days,
                },
            )
