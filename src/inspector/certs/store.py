"""
主机侧证书文件存储。

只负责 CA 与服务端证书相关文件的路径、读写与存在性检查，不包含任何校验逻辑。
存储根目录由调用方注入，测试中可以为每个用例使用独立的 tmp_path。
"""

from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from src.inspector.config import config

CA_KEY = "ca.key"
CA_CERT = "ca.crt"
SERVER_KEY = "server.key"
SERVER_CSR = "server.csr"
SERVER_SRL = "server.srl"
SERVER_CERT = "server.crt"


class CertificateStore:
    def __init__(self, root: str | Path | None = None):
        self.root = Path(root) if root is not None else Path(config.cert_dir)

    def path(self, name: str) -> Path:
        return self.root / name

    @property
    def ca_key(self) -> Path:
        return self.path(CA_KEY)

    @property
    def ca_cert(self) -> Path:
        return self.path(CA_CERT)

    @property
    def server_key(self) -> Path:
        return self.path(SERVER_KEY)

    @property
    def server_csr(self) -> Path:
        return self.path(SERVER_CSR)

    @property
    def server_srl(self) -> Path:
        return self.path(SERVER_SRL)

    @property
    def server_cert(self) -> Path:
        return self.path(SERVER_CERT)

    def ensure_dir(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def exists(self, *names: str) -> bool:
        return all(self.path(name).exists() for name in names)

    def read(self, name: str) -> bytes:
        return self.path(name).read_bytes()

    def read_text(self, name: str) -> str:
        return self.path(name).read_text(encoding="utf-8")

    def write(self, name: str, data: bytes) -> None:
        self.ensure_dir()
        self.path(name).write_bytes(data)

    @contextmanager
    def staging(self) -> Iterator[Path]:
        """在存储目录内创建临时目录，保证之后的 os.replace 不跨文件系统。"""
        self.ensure_dir()
        with tempfile.TemporaryDirectory(dir=self.root, prefix=".staging-") as tmpdir:
            yield Path(tmpdir)

    def commit(self, staged_dir: Path, names: Iterable[str]) -> None:
        """将暂存目录中生成的文件原子地替换到正式位置。"""
        for name in names:
            os.replace(staged_dir / name, self.path(name))
