"""Application configuration management."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def safe_account_name(account: str) -> str:
    """Account name usable in file and logger names (non-alphanumerics become hyphens)."""
    return "".join(c if c.isalnum() else "-" for c in account)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="INBOX_RULES_",
        env_file=[
            ".env",  # Project-level defaults (lower priority)
            Path.home() / ".config" / "inbox-rules" / ".env",  # User config (higher priority)
        ],
        env_file_encoding="utf-8",
    )

    # Paths
    config_dir: Path = Field(
        default=Path.home() / ".config" / "inbox-rules",
        description="Configuration directory",
    )
    rules_file: str = Field(default="filters.yaml", description="Filter rule set filename")
    forwarding_file: str = Field(
        default="forwarding.yaml", description="Forwarding configuration filename"
    )
    database_file: str = Field(default="snapshots.db", description="Snapshot database filename")

    # Storage
    storage_backend: Literal["yaml", "sqlite"] = Field(
        default="yaml", description="Where rule set documents are kept"
    )
    default_account: str = Field(
        default="default", description="Account whose rule set the CLI works on"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="%(asctime)s [%(levelname)s] %(message)s",
        description="Format of per-account log lines",
    )
    log_dir: Path = Field(
        default=Path.home() / ".local" / "state" / "inbox-rules" / "logs",
        description="Directory for log files (per-account logs written here)",
    )
    log_rotation_size_mb: int = Field(
        default=5, ge=1, description="Max size per log file in MB before rotation"
    )
    log_backup_count: int = Field(
        default=3, ge=0, description="Number of rotated log files to keep"
    )

    def account_dir(self, account: str) -> Path:
        """Directory holding one account's rule set and forwarding files."""
        return self.config_dir / "accounts" / safe_account_name(account)

    def rules_path(self, account: str) -> Path:
        """Full path to an account's filter rule set file."""
        return self.account_dir(account) / self.rules_file

    def forwarding_path(self, account: str) -> Path:
        """Full path to an account's forwarding configuration file."""
        return self.account_dir(account) / self.forwarding_file

    @property
    def database_path(self) -> Path:
        """Path to the SQLite snapshot database."""
        return self.config_dir / self.database_file

    def ensure_config_dir(self) -> None:
        """Create config directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)


def load_message(path: Path) -> dict[str, Any]:
    """Load a message (JMAP Email object) from a YAML or JSON file."""
    try:
        with open(path, encoding="utf-8") as f:
            # JSON is a subset of YAML
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"{path} is not valid YAML or JSON: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a message object")
    return data
