"""Application configuration loaded from environment variables and ``~/.timet/.env``."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from timet.exceptions import ConfigurationError

CONFIG_DIR = Path.home() / ".timet"
ENV_FILE = CONFIG_DIR / ".env"

# Object-storage variables that must be non-empty before a sync can run.
REQUIRED_STORAGE_VARS = ("S3_ENDPOINT", "S3_ACCESS_KEY", "S3_SECRET_KEY")


class Settings(BaseSettings):
    """Timet settings.

    Built once at process start and passed explicitly to the database engine and
    the object-store gateway.
    """

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False

    # Paths
    database_path: Path = Field(default_factory=lambda: Path.home() / ".timet.db")
    log_file: Path = Field(default_factory=lambda: CONFIG_DIR / "timet.log")

    # Object storage
    s3_endpoint: str = ""
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_region: str = "us-west-1"
    bucket_name: str = Field(default="timet", min_length=3, max_length=63)
    snapshot_key: str = Field(default="timet.db", min_length=1)

    @field_validator("database_path", "log_file")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("s3_endpoint", "s3_access_key", "s3_secret_key")
    @classmethod
    def _strip_placeholder_quotes(cls, value: str) -> str:
        # Placeholders written by ensure_env_file() look like VAR=''
        return value.strip().strip("'\"")

    def missing_storage_settings(self) -> list[str]:
        """Return the names of required object-storage variables that are empty."""
        values = {
            "S3_ENDPOINT": self.s3_endpoint,
            "S3_ACCESS_KEY": self.s3_access_key,
            "S3_SECRET_KEY": self.s3_secret_key,
        }
        return [name for name in REQUIRED_STORAGE_VARS if not values[name]]

    def validate_storage_credentials(self) -> None:
        """Fail fast when object-storage credentials are incomplete."""
        missing = self.missing_storage_settings()
        if missing:
            joined = ", ".join(missing)
            raise ConfigurationError(
                f"Missing required environment variables ({ENV_FILE}): {joined}"
            )


def ensure_env_file(env_file: Path = ENV_FILE) -> list[str]:
    """Create the env file if needed and append placeholders for absent variables.

    Returns the variable names that were appended.
    """
    env_file.parent.mkdir(parents=True, exist_ok=True)
    env_file.touch(exist_ok=True)

    text = env_file.read_text(encoding="utf-8")
    present: set[str] = set()
    for line in text.splitlines():
        name, sep, _ = line.partition("=")
        if sep:
            present.add(name.strip().upper())

    missing = [name for name in REQUIRED_STORAGE_VARS if name not in present]
    if missing:
        with env_file.open("a", encoding="utf-8") as fh:
            if text and not text.endswith("\n"):
                fh.write("\n")
            for name in missing:
                fh.write(f"{name}=''\n")
    return missing
