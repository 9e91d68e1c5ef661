"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
进程启动时构造一次 Settings，再通过构造函数参数向下传递给各客户端。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("YOJANA_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
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


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 主应答方：Bedrock ----
    bedrock_region: str = Field(default="ap-south-1", description="Bedrock 所在区域")
    bedrock_base_url: Optional[str] = Field(
        default=None,
        description="Bedrock runtime 基础URL，留空时按区域拼接",
    )
    bedrock_model_id: str = Field(
        default="anthropic.claude-3-5-sonnet-20241022-v2:0",
        description="Bedrock 模型 ID",
    )
    bedrock_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("bedrock_api_key", "aws_bearer_token_bedrock"),
        description="Bedrock API 密钥（Bearer token）",
    )
    bedrock_max_tokens: int = Field(default=512, ge=1, description="聊天回复最大 token 数")

    # ---- 备用应答方：Gemini ----
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API 基础URL",
    )
    gemini_model: str = Field(default="gemini-3-flash-preview", description="Gemini 模型名")

    # ---- 功能开关 ----
    use_bedrock_as_primary: bool = Field(default=True, description="是否允许调用主应答方")
    use_gemini_as_fallback: bool = Field(default=True, description="是否允许调用备用应答方")

    # ---- 超时 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    primary_timeout: Optional[float] = Field(default=None, ge=1.0, description="主应答方超时，缺省取 http_timeout")
    secondary_timeout: Optional[float] = Field(default=None, ge=1.0, description="备用应答方超时，缺省取 http_timeout")

    # ---- 会话历史 ----
    history_context_turns: int = Field(default=5, ge=0, le=50, description="提示词中携带的历史轮数")
    history_default_limit: int = Field(default=20, ge=1, description="历史查询默认条数")
    history_max_limit: int = Field(default=50, ge=1, description="历史查询条数上限")
    history_ttl_days: int = Field(default=90, ge=1, description="历史记录保留天数")

    # ---- 响应缓存 ----
    response_cache_ttl_seconds: float = Field(default=3600.0, gt=0, description="备用应答缓存有效期（秒）")
    response_cache_backend: Literal["memory", "json"] = Field(default="memory", description="缓存存储后端")

    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_to_console: bool = Field(default=False, description="是否同时输出到 stderr")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    schemes_file: Optional[str] = Field(default=None, description="福利项目目录文件，留空使用内置目录")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("bedrock_api_key", "gemini_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
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

    @property
    def bedrock_endpoint(self) -> str:
        return (self.bedrock_base_url or f"https://bedrock-runtime.{self.bedrock_region}.amazonaws.com").rstrip("/")


settings = Settings()
