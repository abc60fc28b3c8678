"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("AURI_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class AuriSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 后端接口 ----
    api_base_url: str = Field(
        default="http://localhost:54321/functions/v1",
        description="聊天与会话后端的基础 URL",
    )
    chat_path: str = Field(default="/chat", description="流式聊天接口路径")
    sessions_path: str = Field(default="/sessions", description="会话管理接口路径")
    demo_mode_header: str = Field(
        default="x-demo-mode",
        description="后端用来标记演示模式（无模型密钥）的响应头",
    )

    # ---- 超时 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="单次 HTTP 读写超时时间（秒）")
    request_timeout: Optional[float] = Field(
        default=30.0,
        description="整轮对话的墙钟截止时间（秒），为空表示不限制",
    )

    # ---- 会话与语言 ----
    default_language: str = Field(default="sv", description="默认语言代码")
    sessions_list_limit: int = Field(default=50, ge=1, le=200, description="会话列表最大条数")

    # ---- 本地存储与日志 ----
    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_prefix="AURI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("chat_path", "sessions_path")
    @classmethod
    def ensure_leading_slash(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("request_timeout must be positive or empty")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = AuriSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = AuriSettings
