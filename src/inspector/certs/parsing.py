"""
OpenSSL 文本输出与设备路径的解析。

所有基于正则的解析都集中在此模块，便于直接使用抓取到的真实输出做单元测试，
而不必真正调用 openssl。
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from .errors import CertificateValidityError, CSRValidationError, DeviceResolutionError

# RFC2253 主题格式本身无歧义，但不同 openssl 版本输出前缀不同（"subject=X" 或 "subject= X"）
X509_SUBJECT_CN_REGEX = re.compile(r"[=,]\s*CN=([^,]*)(,.*)?$")
ALLOWED_APP_NAME_REGEX = re.compile(r"[\w.-]+", re.ASCII)
VERIFY_OK_REGEX = re.compile(r"[^:]+: OK")
APP_CONTAINER_PATH_REGEX = re.compile(r"Application/[^/]+/(.*)")
SIMULATOR_DEVICE_REGEX = re.compile(r"/Devices/([^/]+)/")

_END_DATE_FORMAT = "%b %d %H:%M:%S %Y %Z"


def parse_subject_common_name(subject_output: str) -> str:
    """从 `openssl req -noout -subject` 的输出中取出 CN。"""
    matches = X509_SUBJECT_CN_REGEX.search(subject_output.strip())
    if not matches:
        raise CSRValidationError(f"Cannot extract CN from {subject_output}")
    return matches.group(1)


def validate_app_name(app_name: str) -> str:
    """
    应用名随后会被拼接进文件路径与 adb / idb 命令，只允许字母、数字、下划线、点和连字符。
    """
    if not ALLOWED_APP_NAME_REGEX.fullmatch(app_name):
        raise CSRValidationError(
            f"Disallowed app name in CSR: {app_name}. "
            "Only alphanumeric characters and '.' allowed."
        )
    return app_name


def parse_end_date(enddate_output: str) -> datetime:
    """
    解析 `openssl x509 -enddate -noout` 的输出，例如 `notAfter=Oct 17 12:00:00 2027 GMT`。
    :return: UTC 时区的过期时间。
    :raises CertificateValidityError: 输出格式无法识别。
    """
    _, sep, value = enddate_output.strip().partition("=")
    if not sep:
        raise CertificateValidityError(
            "Cannot parse certificate expiry date. Assuming it has expired."
        )
    try:
        expiry = datetime.strptime(value.strip(), _END_DATE_FORMAT)
    except ValueError as e:
        raise CertificateValidityError(
            "Cannot parse certificate expiry date. Assuming it has expired."
        ) from e
    return expiry.replace(tzinfo=timezone.utc)


def is_verify_ok(verify_output: str) -> bool:
    return VERIFY_OK_REGEX.search(verify_output) is not None


def relative_path_in_app_container(absolute_path: str) -> str:
    """`.../Application/<UUID>/Documents/x` -> `Documents/x`"""
    matches = APP_CONTAINER_PATH_REGEX.search(absolute_path)
    if not matches:
        raise DeviceResolutionError(f"Path didn't match expected pattern: {absolute_path}")
    return matches.group(1)


def simulator_id_from_path(app_directory: str) -> str | None:
    # 模拟器的应用目录位于 .../CoreSimulator/Devices/<UDID>/data/...
    matches = SIMULATOR_DEVICE_REGEX.search(app_directory)
    return matches.group(1) if matches else None
