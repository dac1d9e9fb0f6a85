"""Configuration management for the Kiro assistant."""

import os
from pathlib import Path
from typing import Optional, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator


ProviderName = Literal["groq", "openrouter"]

PROVIDER_BASE_URLS = {
    "groq": "https://api.groq.com/openai/v1",
    "openrouter": "https://openrouter.ai/api/v1",
}

PROVIDER_KEY_VARS = {
    "groq": "GROQ_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


class LLMConfig(BaseModel):
    provider: ProviderName = "groq"
    model: str = "llama-3.3-70b-versatile"
    vision_model: str = "llama-3.2-90b-vision-preview"
    base_url: Optional[str] = None
    api_key: Optional[SecretStr] = None
    temperature: float = 0.7
    max_tokens: int = 1000
    timeout_s: float = 30.0
    max_retries: int = 3

    @property
    def resolved_base_url(self) -> str:
        return self.base_url or PROVIDER_BASE_URLS[self.provider]


class BudgetConfig(BaseModel):
    daily_token_limit: int = 1_500_000
    max_tokens_per_request: int = 600
    warning_threshold: float = 0.70
    critical_threshold: float = 0.95
    response_buffer_tokens: int = 100
    default_tokens_per_request: int = 256

    @field_validator('warning_threshold', 'critical_threshold')
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("thresholds must be between 0 and 1")
        return v

    @model_validator(mode='after')
    def validate_ordering(self) -> "BudgetConfig":
        if self.warning_threshold >= self.critical_threshold:
            raise ValueError("warning_threshold must be below critical_threshold")
        return self


class CacheConfig(BaseModel):
    ttl_seconds: float = 6 * 60 * 60
    cleanup_interval_s: float = 10 * 60


class CoordinatorConfig(BaseModel):
    debounce_ms: int = 800
    dedup_window_ms: int = 2000
    debounce_enabled: bool = True


class ExpressionConfig(BaseModel):
    use_vision: bool = True
    candidate_count: int = 5
    attach_images: bool = False
    mascot_dir: Optional[Path] = None
    variety: bool = False


class PromptConfig(BaseModel):
    max_message_chars: int = 200
    history_turns: int = 6
    quick_responses: bool = True


class Config(BaseModel):
    """Main configuration for the assistant pipeline."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    coordinator: CoordinatorConfig = Field(default_factory=CoordinatorConfig)
    expression: ExpressionConfig = Field(default_factory=ExpressionConfig)
    prompt: PromptConfig = Field(default_factory=PromptConfig)

    def api_key(self) -> Optional[str]:
        """Return the provider API key, preferring the config file over the environment."""
        if self.llm.api_key is not None:
            return self.llm.api_key.get_secret_value()
        return (
            os.environ.get("KIRO_API_KEY")
            or os.environ.get(PROVIDER_KEY_VARS[self.llm.provider])
        )

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from YAML file, or defaults if none is found."""
        if config_path is None:
            candidates = [
                Path("kiro.yaml"),
                Path.home() / ".config" / "kiro" / "config.yaml",
            ]
            for candidate in candidates:
                if candidate.exists():
                    config_path = candidate
                    break
            else:
                logger.info("No config file found, using defaults")
                return cls()

        logger.info(f"Loading config from: {config_path}")
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file. The API key is never written."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode='json', exclude={'llm': {'api_key'}})
        with open(config_path, 'w') as f:
            yaml.safe_dump(data, f, default_flow_style=False)
