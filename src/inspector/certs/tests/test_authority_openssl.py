"""
使用本机 openssl 的集成测试：生成真实的 CA、服务端证书并签发客户端证书。
未安装 openssl 时跳过。
"""

import shutil
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from src.inspector.certs.authority import CAManager
from src.inspector.certs.csr import CSRProcessor
from src.inspector.certs.errors import CSRValidationError
from src.inspector.certs.store import CertificateStore
from src.inspector.certs.toolchain import OpenSSL

pytestmark = pytest.mark.skipif(shutil.which("openssl") is None, reason="openssl 未安装")


def _gen_csr(common_name: str) -> str:
    """生成 RSA 私钥与 CSR（返回 PEM 文本）。"""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(
            x509.Name([x509.NameAttribute(x509.oid.NameOID.COMMON_NAME, common_name)])
        )
        .sign(private_key, hashes.SHA256())
    )
    return csr.public_bytes(serialization.Encoding.PEM).decode("utf-8")


def _load(path) -> x509.Certificate:
    return x509.load_pem_x509_certificate(path.read_bytes())


@pytest.fixture
def store(tmp_path):
    return CertificateStore(tmp_path / "certs")


@pytest.mark.asyncio
async def test_generates_ca_and_server_certificate(store):
    manager = CAManager(store, OpenSSL("openssl"))
    await manager.ensure_server_cert_exists()

    ca = _load(store.ca_cert)
    server = _load(store.server_cert)

    assert ca.subject == ca.issuer
    assert ca.subject.get_attributes_for_oid(x509.oid.NameOID.COMMON_NAME)[0].value == (
        "ReactNativeExtensionCA"
    )
    assert server.subject.get_attributes_for_oid(x509.oid.NameOID.COMMON_NAME)[0].value == "localhost"
    server.verify_directly_issued_by(ca)
    assert ca.not_valid_after_utc > datetime.now(timezone.utc) + timedelta(seconds=86400)

    # 第二次调用时证书均有效，不会重新生成
    before = store.read(store.server_cert.name)
    await manager.ensure_server_cert_exists()
    assert store.read(store.server_cert.name) == before


@pytest.mark.asyncio
async def test_stale_ca_is_replaced_together_with_server_cert(store):
    # 有效期只有 1 天的证书落在 24 小时过期窗口内
    await CAManager(store, OpenSSL("openssl"), validity_days=1).ensure_server_cert_exists()
    old_ca = _load(store.ca_cert)

    await CAManager(store, OpenSSL("openssl"), validity_days=365).ensure_server_cert_exists()

    new_ca = _load(store.ca_cert)
    assert new_ca.fingerprint(hashes.SHA256()) != old_ca.fingerprint(hashes.SHA256())
    _load(store.server_cert).verify_directly_issued_by(new_ca)


@pytest.mark.asyncio
async def test_sign_client_csr(store):
    toolchain = OpenSSL("openssl")
    await CAManager(store, toolchain).ensure_server_cert_exists()
    processor = CSRProcessor(store, toolchain)
    csr = _gen_csr("com.example.app")

    assert await processor.extract_app_name(csr) == "com.example.app"

    client_pem = await processor.sign(csr.replace("\n", "\r\n"))
    client = x509.load_pem_x509_certificate(client_pem.encode("utf-8"))
    client.verify_directly_issued_by(_load(store.ca_cert))
    assert client.subject.get_attributes_for_oid(x509.oid.NameOID.COMMON_NAME)[0].value == (
        "com.example.app"
    )


@pytest.mark.asyncio
async def test_rejects_disallowed_common_name(store):
    processor = CSRProcessor(store, OpenSSL("openssl"))
    with pytest.raises(CSRValidationError, match="Disallowed app name"):
        await processor.extract_app_name(_gen_csr("com.example.app/../../etc"))
