import re
from pathlib import Path
from typing import Literal, Optional, Pattern
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings."""

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="")

    # Anomaly Detection Configuration
    high_coupling_threshold: int = Field(default=8, ge=0)
    god_node_threshold: int = Field(default=10, ge=0)

    # Flow Configuration
    flow_acceptance_ratio: float = Field(default=0.5, ge=0.0, le=1.0)
    entry_point_pattern: str = Field(default=r"^(index|main|app|content|background|server|cli)\.")
    entry_point_fallback_count: int = Field(default=3, ge=0)
    max_flow_retries: int = Field(default=2, ge=0)
    heuristic_max_chain_depth: int = Field(default=8, ge=1)
    heuristic_min_chain_length: int = Field(default=3, ge=2)
    heuristic_overlap_ratio: float = Field(default=0.7, ge=0.0, le=1.0)

    # Session Configuration
    history_limit: int = Field(default=50, ge=0)
    default_layout: Literal["TD", "LR", "BT", "RL"] = Field(default="TD")

    model_config = SettingsConfigDict(
        env_prefix="CODELENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("entry_point_pattern")
    @classmethod
    def ensure_valid_pattern(cls, v):
        re.compile(v)
        return v

    @property
    def entry_point_regex(self) -> Pattern[str]:
        """Get the entry point pattern compiled, case-insensitive."""
        return re.compile(self.entry_point_pattern, re.IGNORECASE)

    @property
    def log_dir(self) -> Optional[Path]:
        """Get log directory path."""
        return Path(self.log_file).parent if self.log_file else None

    def ensure_directories(self):
        """Ensure necessary directories exist."""
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)


settings = Settings()
settings.ensure_directories()
