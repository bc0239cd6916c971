"""Configuration management using Pydantic for validation."""

from pathlib import Path
from typing import Any, Dict, List, Literal

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ENTITY_TYPES = [
    "Person",
    "Organization",
    "Event",
    "Actor",
    "Polity",
    "Concept",
    "Location",
    "Impact",
    "Topic",
    "System",
    "Other",
]

DEFAULT_RELATIONSHIP_TYPES = [
    "TRIGGERED",
    "PARTICIPATED_IN",
    "AFFECTED",
    "LOCATED_IN",
    "PRECEDES",
    "FOLLOWS",
    "ASSOCIATED_WITH",
    "MENTIONS",
]

SEVEN_MOUNTAINS = [
    "Religion",
    "Family",
    "Education",
    "Government",
    "Media",
    "Arts & Entertainment",
    "Business",
]


class ChunkingConfig(BaseSettings):
    """Chunking configuration."""

    max_chars: int = 8000
    min_chars: int = 100

    @model_validator(mode="after")
    def validate_bounds(self) -> "ChunkingConfig":
        """Keep the window size sane and the noise floor below it."""
        if self.max_chars < 1000:
            raise ValueError("max_chars must be at least 1000")
        if not 0 <= self.min_chars < self.max_chars:
            raise ValueError("min_chars must be between 0 and max_chars")
        return self


class LLMConfig(BaseSettings):
    """LLM configuration."""

    provider: Literal["openai", "anthropic"] = "openai"
    model: str = "@cf/meta/llama-3.1-70b-instruct"
    temperature: float = 0.1
    max_tokens: int = 4096
    timeout: int = 120
    retry_attempts: int = 2
    base_url: str | None = None
    api_key: str | None = None

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Validate temperature is between 0 and 1."""
        if not 0 <= v <= 1:
            raise ValueError("Temperature must be between 0 and 1")
        return v


class ExtractionConfig(BaseSettings):
    """Graph extraction configuration."""

    variant: Literal["simple", "extended"] = "simple"
    prompt_template: str = "config/extraction_prompts.yaml"
    llm: LLMConfig = Field(default_factory=LLMConfig)
    max_concurrent_chunks: int = Field(default=4, ge=1)
    inter_call_delay_seconds: float = Field(default=1.0, ge=0.0)
    entity_types: List[str] = Field(default_factory=lambda: list(DEFAULT_ENTITY_TYPES))
    relationship_types: List[str] = Field(
        default_factory=lambda: list(DEFAULT_RELATIONSHIP_TYPES)
    )
    mountains: List[str] = Field(default_factory=lambda: list(SEVEN_MOUNTAINS))
    fallback_mountain: str = "Government"
    resolution_lookup_limit: int = Field(default=500, ge=1)

    @property
    def include_events(self) -> bool:
        return self.variant == "extended"


class StoreConfig(BaseSettings):
    """Graph store connection settings."""

    backend: Literal["memory", "payload", "neo4j"] = "memory"
    payload_url: str = "http://localhost:3000/api"
    payload_api_key: str = ""
    payload_user_collection: str = "users"
    timeout: float = 30.0
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = ""
    neo4j_database: str = "neo4j"


class BucketConfig(BaseSettings):
    """Document bucket bindings (bucket name -> local root)."""

    roots: Dict[str, str] = Field(default_factory=lambda: {"RESEARCH_DOCS": "data/research_docs"})
    default_bucket: str = "RESEARCH_DOCS"
    default_prefix: str = "uploads/"


class SweepConfig(BaseSettings):
    """Manual sweep defaults."""

    default_limit: int = Field(default=5, ge=1)
    page_size: int = Field(default=1000, ge=1)
    extensions: List[str] = Field(default_factory=lambda: [".md", ".txt"])


class WorkflowConfig(BaseSettings):
    """Durable workflow retry policy and dispatch settings."""

    retry_limit: int = Field(default=3, ge=0)
    retry_delay_seconds: float = Field(default=10.0, ge=0.0)
    backoff: Literal["constant", "linear", "exponential"] = "exponential"
    dedup_window_seconds: int = Field(default=86400, ge=1)


class LedgerConfig(BaseSettings):
    """External ledger database settings."""

    database_url: str = "sqlite:///data/ledger.db"
    row_limit: int = Field(default=2000, ge=1)


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["json", "text"] = "text"
    file: str = ""
    max_size_mb: int = 100
    backup_count: int = 5


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    buckets: BucketConfig = Field(default_factory=BucketConfig)
    sweep: SweepConfig = Field(default_factory=SweepConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Environment variables
    openai_api_key: str = ""
    openai_base_url: str = ""

    @staticmethod
    def _deep_merge_dict(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge two dicts (overrides win).

        This is used to apply environment-derived overrides on top of YAML defaults.
        """
        merged: Dict[str, Any] = dict(base)
        for key, value in overrides.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = Config._deep_merge_dict(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "Config":
        """Load configuration from YAML file and environment variables.

        Precedence (highest to lowest):
        1) Environment variables / .env
        2) YAML file
        3) Model defaults

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML file is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(f"YAML config root must be a mapping/dict: {yaml_path}")

        # Only non-default env values are layered over the YAML file.
        env_overrides = cls().model_dump(exclude_defaults=True)
        merged = cls._deep_merge_dict(yaml_config, env_overrides)

        return cls(**merged)

    def validate_config(self) -> None:
        """Validate configuration settings.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.buckets.default_bucket not in self.buckets.roots:
            raise ValueError(
                f"Default bucket {self.buckets.default_bucket!r} has no configured root"
            )

        if self.extraction.fallback_mountain not in self.extraction.mountains:
            raise ValueError(
                f"Fallback mountain {self.extraction.fallback_mountain!r} "
                "is not one of the configured mountains"
            )

        if "ASSOCIATED_WITH" not in self.extraction.relationship_types:
            raise ValueError("relationship_types must include ASSOCIATED_WITH")
        if "Other" not in self.extraction.entity_types:
            raise ValueError("entity_types must include Other")

        if self.store.backend == "neo4j" and not self.store.neo4j_password:
            raise ValueError("Neo4j password required when using the neo4j store backend")

    def llm_credentials(self) -> LLMConfig:
        """Return the extraction LLM config with env-provided credentials filled in."""
        llm = self.extraction.llm
        updates: Dict[str, Any] = {}
        if not llm.api_key and self.openai_api_key:
            updates["api_key"] = self.openai_api_key
        if not llm.base_url and self.openai_base_url:
            updates["base_url"] = self.openai_base_url
        return llm.model_copy(update=updates) if updates else llm


def load_config(yaml_path: str | Path = "config/config.yaml") -> Config:
    """Load and validate configuration.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        Loaded and validated Config instance
    """
    config = Config.from_yaml(yaml_path)
    config.validate_config()
    return config
