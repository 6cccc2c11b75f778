"""Pydantic configuration models for card."""

import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def default_home() -> Path:
    return Path(os.environ.get("CARD_HOME") or "~/.card").expanduser()


class PathsConfig(BaseModel):
    """Store location."""

    home: Path = Field(default_factory=default_home)

    @model_validator(mode="after")
    def expand_paths(self):
        self.home = self.home.expanduser()
        return self


class RecallConfig(BaseModel):
    """Recall engine limits."""

    max_capsules: int = Field(default=20, ge=1)
    recent_limit: int = Field(default=15, ge=1)
    max_context_tokens: int = Field(default=5000, ge=0)


class SimilarityConfig(BaseModel):
    """Jaccard thresholds for duplicate and contradiction checks."""

    duplicate_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    high_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    contradiction_question: float = Field(default=0.5, ge=0.0, le=1.0)
    contradiction_choice: float = Field(default=0.4, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_order(self):
        if self.high_confidence < self.duplicate_threshold:
            raise ValueError("high_confidence must be >= duplicate_threshold")
        return self


class GraphConfig(BaseModel):
    default_depth: int = Field(default=2, ge=1)


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    json_mode: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {sorted(VALID_LOG_LEVELS)}")
        return v


class CardConfig(BaseModel):
    """Top-level config.yaml schema."""

    version: str = "1"
    paths: PathsConfig = Field(default_factory=PathsConfig)
    recall: RecallConfig = Field(default_factory=RecallConfig)
    similarity: SimilarityConfig = Field(default_factory=SimilarityConfig)
    graph: GraphConfig = Field(default_factory=GraphConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "CardConfig":
        return cls.model_validate(data or {})

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
