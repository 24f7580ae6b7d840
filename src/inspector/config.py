"""
配置加载模块：支持 .env、环境变量、工作目录 config.json（或 CONFIG_FILE 指定）多来源合并。
公开接口：
- Config: 读取配置的设置类
- config: Config 的单例实例
内部方法：
- Config.settings_customise_sources: 自定义配置来源顺序
- Config.expand_cert_dir: 展开证书目录中的 ~ 与相对路径
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource


# 证书剩余有效期低于该值即视为过期并重新生成
MIN_CERT_EXPIRY_WINDOW_SECONDS = 24 * 60 * 60


def _default_cert_dir() -> Path:
    return Path.home() / ".config" / "vscode-react-native" / "certs"


class Config(BaseSettings):
    app_name: str = "Network Inspector Certificate Provider"
    cert_dir: Path = _default_cert_dir()

    openssl_path: str = "openssl"
    adb_path: str = "adb"
    idb_path: str = "idb"

    ca_subject: str = "/C=US/ST=CA/L=Redmond/O=Microsoft/CN=ReactNativeExtensionCA"
    server_subject: str = "/C=US/ST=CA/L=Redmond/O=Microsoft/CN=localhost"
    min_cert_expiry_window_seconds: int = MIN_CERT_EXPIRY_WINDOW_SECONDS
    rsa_key_bits: int = 2048
    cert_validity_days: int = 365

    # 主机平台，决定 Android 证书是否需要先落地到本地目录再推送（win32）
    host_platform: str = sys.platform
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("cert_dir", mode="before")
    @classmethod
    def expand_cert_dir(cls, value: Any) -> Any:
        """支持 ~ 开头的路径，空值回退到默认目录。"""
        if value is None or value == "":
            return _default_cert_dir()
        if isinstance(value, (str, Path)):
            return Path(value).expanduser()
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """自定义配置来源顺序：入参 > 环境变量 > .env > config.json > secrets。"""

        class JsonFileSettingsSource(PydanticBaseSettingsSource):
            """从工作目录的 config.json（或 CONFIG_FILE 指定路径）加载配置的自定义 Source。"""

            def __init__(self, settings_cls):
                super().__init__(settings_cls)
                self._data: Dict[str, Any] | None = None

            def _load(self) -> None:
                if self._data is not None:
                    return
                cfg_path = os.environ.get("CONFIG_FILE")
                path = Path(cfg_path) if cfg_path else Path.cwd() / "config.json"
                if not path.exists():
                    self._data = {}
                    return
                try:
                    with path.open("r", encoding="utf-8") as f:
                        data = json.load(f)
                    self._data = data if isinstance(data, dict) else {}
                except (OSError, ValueError):
                    self._data = {}

            def __call__(self) -> Dict[str, Any]:
                self._load()
                return dict(self._data or {})

            def get_field_value(self, field, field_name):  # type: ignore[override]
                """为满足抽象基类要求，按字段名/别名返回字段值。"""
                self._load()
                data = self._data or {}
                key_alias = getattr(field, "alias", None) or field_name
                if key_alias in data:
                    return data[key_alias], key_alias, True
                if field_name in data:
                    return data[field_name], field_name, True
                return None, field_name, False

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonFileSettingsSource(settings_cls),
            file_secret_settings,
        )


config = Config()
