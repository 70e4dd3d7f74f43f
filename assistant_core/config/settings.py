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
    explicit = os.getenv("AGENT_CONFIG_FILE")
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


class PydanticSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 远程 AI（第一层）----
    remote_provider: str = Field(
        default="openai",
        description="远程 Provider 名称，目前支持 openai 兼容接口",
    )
    remote_model: str = Field(
        default="btp-chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    remote_api_key: Optional[str] = Field(default=None, description="远程 API 密钥，为空时跳过远程层")
    remote_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="远程 API 基础URL",
    )
    remote_timeout: float = Field(
        default=8.0,
        gt=0.0,
        description="远程层整体等待上限（秒），超时后立即降级到本地层",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 文档提取 ----
    ocr_language: str = Field(default="fra", description="Tesseract OCR 语言代码")

    # ---- 存储 ----
    storage_root: str = Field(default=".storage", description="存储根目录")
    corpus_path: str = Field(default=".storage/localTraining.jsonl", description="训练语料文件路径")
    corpus_flush_size: int = Field(default=5, ge=1, le=1000, description="缓冲区达到该条数时自动写入语料")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 本地层 ----
    max_context_messages: int = Field(default=20, ge=1, le=100, description="发送给远程层的最大上下文消息数")
    max_follow_up_questions: int = Field(default=3, ge=0, le=20, description="启发式回复最多追问数量")
    knowledge_file: Optional[str] = Field(
        default=None,
        description="规则表/项目画像 YAML 文件，为空时使用内置 knowledge.yaml",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("remote_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v or None

    @field_validator("ocr_language")
    @classmethod
    def validate_ocr_language(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("ocr_language must not be empty")
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


settings = PydanticSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = type(settings)
