from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="INITKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="initkit", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment mode"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log output format"
    )

    # Paths below are relative to the project being initialized
    backup_dir: Path = Field(
        default=Path(".agent/tmp/heavyweight-backup"),
        description="Root directory for per-run protected file backups",
    )
    lock_file: Path = Field(
        default=Path(".agent/tmp/initkit.lock"),
        description="Lock file guarding concurrent initialization runs",
    )
    rules_dir: Path = Field(
        default=Path(".claude/rules"), description="Directory for per-plugin rule files"
    )
    shared_instructions_files: list[str] = Field(
        default=["CLAUDE.md", "claude.md"],
        description="Shared instructions file names, first existing wins",
    )

    init_command_timeout_ms: int = Field(
        default=120000, gt=0, description="Default heavyweight init command timeout"
    )
    tool_check_timeout_ms: int = Field(
        default=10000, gt=0, description="Timeout for a single tool availability probe"
    )
    tool_install_timeout_ms: int = Field(
        default=300000, gt=0, description="Timeout for a single tool install command"
    )
    merge_separator: str = Field(
        default="\n\n---\n\n", description="Separator used by append/prepend merges"
    )
    heavyweight_rules_priority: int = Field(
        default=80, ge=0, le=99, description="Rules priority for heavyweight plugins"
    )

    @field_validator("shared_instructions_files")
    @classmethod
    def validate_instruction_files(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one shared instructions file name is required")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
