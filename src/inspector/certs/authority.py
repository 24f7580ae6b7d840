"""
CA 与服务端证书的生命周期管理。

- 确保 CA 存在且距离过期超过最小窗口，否则重新生成（旧 CA 签发的客户端证书随之失效）；
- 确保服务端证书存在、未过期并由当前 CA 签发，否则重新生成。

证书的生成与校验全部通过 OpenSSL 子命令完成。
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from loguru import logger

from src.inspector.config import config
from .errors import CertificateValidityError, ToolchainError
from .parsing import is_verify_ok, parse_end_date
from .store import CA_CERT, CA_KEY, SERVER_CERT, SERVER_CSR, SERVER_KEY, CertificateStore
from .toolchain import OpenSSL, ensure_toolchain_available

_RECOVERABLE_ERRORS = (CertificateValidityError, ToolchainError, OSError)


class CAManager:
    def __init__(
        self,
        store: CertificateStore,
        toolchain: OpenSSL | None = None,
        *,
        expiry_window_seconds: int | None = None,
        ca_subject: str | None = None,
        server_subject: str | None = None,
        key_bits: int | None = None,
        validity_days: int | None = None,
    ):
        self.store = store
        self.toolchain = toolchain or OpenSSL()
        self.expiry_window_seconds = (
            expiry_window_seconds
            if expiry_window_seconds is not None
            else config.min_cert_expiry_window_seconds
        )
        self.ca_subject = ca_subject or config.ca_subject
        self.server_subject = server_subject or config.server_subject
        self.key_bits = key_bits or config.rsa_key_bits
        self.validity_days = validity_days or config.cert_validity_days

    async def ensure_certificate_authority_exists(self) -> None:
        if not self.store.ca_key.exists():
            await self.generate_certificate_authority()
            return
        try:
            await self.check_cert_is_valid(self.store.ca_cert)
        except _RECOVERABLE_ERRORS as e:
            logger.info(f"CA 证书不可用（{e}），重新生成 CA")
            await self.generate_certificate_authority()

    async def ensure_server_cert_exists(self) -> None:
        # 并发会话可能同时走到重新生成分支，这里不加锁，以最后一次写入为准
        ensure_toolchain_available(self.toolchain)
        if not self.store.exists(SERVER_KEY, SERVER_CERT, CA_CERT):
            await self.generate_server_certificate()
            return
        try:
            await self.check_cert_is_valid(self.store.server_cert)
            # CA 即将过期时，即使服务端证书仍有效也要一并重新生成
            await self.check_cert_is_valid(self.store.ca_cert)
            await self.verify_server_cert_issued_by_ca()
        except _RECOVERABLE_ERRORS as e:
            logger.info(f"服务端证书不可用（{e}），重新生成服务端证书")
            await self.generate_server_certificate()

    async def check_cert_is_valid(self, path: Path) -> None:
        """
        校验证书在最小过期窗口之外仍然有效。
        checkend 只能发现“即将过期”的证书，无法发现已经过期的证书，
        因此还要解析 enddate 再比较一次，两步都通过才算有效。
        :raises CertificateValidityError: 证书不存在、即将过期、已过期或无法解析过期时间。
        """
        if not path.exists():
            raise CertificateValidityError(f"{path} does not exist")

        try:
            await self.toolchain.execute(
                "x509", {"checkend": self.expiry_window_seconds, "in": str(path)}
            )
        except ToolchainError as e:
            logger.warning(f"Certificate will expire soon: {path}")
            raise CertificateValidityError(f"Certificate will expire soon: {path}") from e

        end_date_output = await self.toolchain.execute(
            "x509", {"enddate": True, "in": str(path), "noout": True}
        )
        try:
            expiry = parse_end_date(end_date_output)
        except CertificateValidityError:
            logger.error(f"Unable to parse certificate expiry date: {end_date_output}")
            raise

        deadline = datetime.now(timezone.utc) + timedelta(seconds=self.expiry_window_seconds)
        if expiry <= deadline:
            raise CertificateValidityError("Certificate has expired or will expire soon.")

    async def verify_server_cert_issued_by_ca(self) -> None:
        output = await self.toolchain.execute(
            "verify", {"CAfile": str(self.store.ca_cert)}, [str(self.store.server_cert)]
        )
        if not is_verify_ok(output):
            raise CertificateValidityError("Current server cert was not issued by current CA")

    async def generate_certificate_authority(self) -> None:
        logger.info(f"生成新的 CA：{self.store.ca_cert}")
        with self.store.staging() as staged:
            key_path = staged / CA_KEY
            await self.toolchain.execute("genrsa", {"out": str(key_path)}, [str(self.key_bits)])
            await self.toolchain.execute(
                "req",
                {
                    "new": True,
                    "x509": True,
                    "subj": self.ca_subject,
                    "key": str(key_path),
                    "out": str(staged / CA_CERT),
                    "days": self.validity_days,
                },
            )
            self.store.commit(staged, [CA_KEY, CA_CERT])

    async def generate_server_certificate(self) -> None:
        await self.ensure_certificate_authority_exists()
        logger.info(f"生成新的服务端证书：{self.store.server_cert}")
        with self.store.staging() as staged:
            key_path = staged / SERVER_KEY
            csr_path = staged / SERVER_CSR
            await self.toolchain.execute("genrsa", {"out": str(key_path)}, [str(self.key_bits)])
            await self.toolchain.execute(
                "req",
                {
                    "new": True,
                    "key": str(key_path),
                    "out": str(csr_path),
                    "subj": self.server_subject,
                },
            )
            await self.toolchain.execute(
                "x509",
                {
                    "req": True,
                    "in": str(csr_path),
                    "CA": str(self.store.ca_cert),
                    "CAkey": str(self.store.ca_key),
                    "CAcreateserial": True,
                    "CAserial": str(self.store.server_srl),
                    "out": str(staged / SERVER_CERT),
                    "days": self.validity_days,
                },
            )
            self.store.commit(staged, [SERVER_KEY, SERVER_CSR, SERVER_CERT])
        log_certificate_info("CA", self.store.ca_cert)
        log_certificate_info("服务端", self.store.server_cert)


def log_certificate_info(label: str, path: Path) -> None:
    """打印证书主题、签发者、序列号、有效期与指纹。"""
    try:
        cert = x509.load_pem_x509_certificate(path.read_bytes())
    except (OSError, ValueError) as e:
        logger.debug(f"读取{label}证书信息失败：{e}")
        return
    logger.info(
        f"{label}证书信息: subject={cert.subject.rfc4514_string()}, "
        f"issuer={cert.issuer.rfc4514_string()}, serial=0x{format(cert.serial_number, 'x')}, "
        f"not_after={cert.not_valid_after_utc}, sha256={cert.fingerprint(hashes.SHA256()).hex()}"
    )
