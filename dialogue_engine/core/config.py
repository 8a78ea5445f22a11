"""
Application settings management.

Settings are loaded from environment variables with .env file support.
Engine tuning (model routing, duplicate thresholds, alert thresholds,
turn limits) is loaded from config/engine_config.yaml.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["anthropic", "openai", "kimi", "deepseek"]


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=Path("config"),
        description="Directory containing YAML configuration files",
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/dialogue_engine.db"),
        description="Path to SQLite database holding quality turn metadata",
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    #
    # Which model serves which task lives in the routing table of
    # engine_config.yaml. Keys below only decide which providers are usable.

    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    kimi_api_key: Optional[str] = Field(
        default=None, description="Kimi (Moonshot AI) API key"
    )
    deepseek_api_key: Optional[str] = Field(
        default=None, description="DeepSeek API key"
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    def api_key_for(self, provider: str) -> Optional[str]:
        """Return the configured API key for a provider, or None."""
        return getattr(self, f"{provider}_api_key", None)


# ============================================================================
# Engine Configuration (from YAML)
# ============================================================================


class ModelDescriptor(BaseModel):
    """One entry of a task's ordered model chain."""

    provider: ProviderName
    model: str
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=400, ge=1)
    timeout: float = Field(default=20.0, gt=0, description="Per-call timeout (s)")


def _default_routing() -> Dict[str, List[ModelDescriptor]]:
    generation_chain = [
        ModelDescriptor(provider="anthropic", model="claude-sonnet-4-6"),
        ModelDescriptor(provider="openai", model="gpt-4o-mini"),
        ModelDescriptor(provider="deepseek", model="deepseek-chat"),
    ]
    classification_chain = [
        ModelDescriptor(
            provider="openai", model="gpt-4o-mini", temperature=0.0, max_tokens=120
        ),
        ModelDescriptor(
            provider="anthropic",
            model="claude-haiku-4-5",
            temperature=0.0,
            max_tokens=120,
        ),
    ]
    return {
        "question_generation": list(generation_chain),
        "extension_offer": list(generation_chain),
        "consent_question": list(generation_chain),
        "field_question": list(generation_chain),
        "intent_classification": list(classification_chain),
        "field_extraction": list(classification_chain),
    }


class DuplicateThresholds(BaseModel):
    """Thresholds of the near-duplicate question detector.

    Empirically tuned on Italian and English interview transcripts.
    Recalibrate per deployment language/corpus rather than assuming
    they generalize.
    """

    jaccard: float = Field(default=0.72, ge=0.0, le=1.0)
    dice: float = Field(default=0.87, ge=0.0, le=1.0)
    prefix_jaccard: float = Field(default=0.45, ge=0.0, le=1.0)
    prefix_tokens: int = Field(default=4, ge=1)
    min_informative_tokens: int = Field(
        default=5, ge=1, description="Token floor for the high-similarity rule"
    )
    history_window: int = Field(
        default=80, ge=1, description="Assistant messages scanned, most recent first"
    )


class AlertThresholds(BaseModel):
    """Sample-size guards and warn/critical cutoffs for quality alerts."""

    min_evaluated_turns: int = Field(default=40, ge=0)
    min_assistant_turns_for_coverage: int = Field(default=30, ge=0)
    telemetry_coverage_warn: float = Field(default=0.9, ge=0.0, le=1.0)
    pass_rate_warn: float = Field(default=0.85, ge=0.0, le=1.0)
    pass_rate_critical: float = Field(default=0.75, ge=0.0, le=1.0)
    gate_trigger_warn: float = Field(default=0.25, ge=0.0, le=1.0)
    gate_trigger_critical: float = Field(default=0.4, ge=0.0, le=1.0)
    fallback_warn: float = Field(default=0.03, ge=0.0, le=1.0)
    fallback_critical: float = Field(default=0.08, ge=0.0, le=1.0)
    completion_guard_warn: float = Field(default=0.05, ge=0.0, le=1.0)
    pass_rate_drop_warn: float = Field(default=0.1, ge=0.0, le=1.0)


class EngineLimits(BaseModel):
    """Turn-level limits of the dialogue engine."""

    max_generation_attempts: int = Field(
        default=2, ge=1, le=2, description="First attempt plus one regeneration"
    )
    recent_question_window: int = Field(
        default=3, ge=1, description="Past questions checked by the duplicate gate"
    )
    max_extension_turns: int = Field(
        default=3, ge=0, description="Extra deep-dive turns after an accepted offer"
    )
    deep_fallback_topics: int = Field(
        default=2, ge=1, description="Topics revisited when no sub-goal is left uncovered"
    )
    max_offer_reasks: int = Field(default=1, ge=0)
    max_consent_reasks: int = Field(default=1, ge=0)
    max_field_attempts: int = Field(default=2, ge=1)
    transcript_window: int = Field(
        default=12, ge=1, description="Recent messages used to build prompts"
    )


class ModelPricing(BaseModel):
    """USD price per million tokens."""

    input_per_million: float = Field(default=0.0, ge=0.0)
    output_per_million: float = Field(default=0.0, ge=0.0)


class EngineConfig(BaseModel):
    """
    Complete engine configuration loaded from engine_config.yaml.

    Loaded once at process start; services receive the sections they need.
    """

    routing: Dict[str, List[ModelDescriptor]] = Field(default_factory=_default_routing)
    duplicate: DuplicateThresholds = Field(default_factory=DuplicateThresholds)
    alerts: AlertThresholds = Field(default_factory=AlertThresholds)
    limits: EngineLimits = Field(default_factory=EngineLimits)
    pricing: Dict[str, ModelPricing] = Field(default_factory=dict)

    @field_validator("routing")
    @classmethod
    def chains_not_empty(
        cls, v: Dict[str, List[ModelDescriptor]]
    ) -> Dict[str, List[ModelDescriptor]]:
        """Every routed task needs at least one model."""
        empty = [task for task, chain in v.items() if not chain]
        if empty:
            raise ValueError(f"Routing chains must not be empty: {', '.join(empty)}")
        return v

    def chain_for(self, task: str) -> List[ModelDescriptor]:
        """Ordered model chain for a task.

        Raises:
            KeyError: If the task has no routing entry
        """
        return self.routing[task]

    def get_pricing_for_model(self, model: str) -> Optional[ModelPricing]:
        """Pricing for a model id, matching the longest configured prefix."""
        matches = [name for name in self.pricing if model.startswith(name)]
        if not matches:
            return None
        return self.pricing[max(matches, key=len)]


def load_engine_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load engine configuration from YAML file.

    Args:
        config_path: Path to engine_config.yaml. If None, looks next to the
            package first and then in the working directory.

    Returns:
        EngineConfig with validated settings (defaults when no file exists)

    Raises:
        pydantic.ValidationError: If the file content is invalid
    """
    if config_path is None:
        candidates = [
            Path(__file__).resolve().parent.parent.parent
            / "config"
            / "engine_config.yaml",
            Path.cwd() / "config" / "engine_config.yaml",
        ]
        config_path = next((p for p in candidates if p.exists()), None)
        if config_path is None:
            return EngineConfig()

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return EngineConfig()

    with open(str(config_path), encoding="utf-8") as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return EngineConfig()

    return EngineConfig(**config_data)


# Global settings instance
settings = Settings()

# Global engine config instance
engine_config = load_engine_config()
