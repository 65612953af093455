"""Runtime configuration from environment variables."""

from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server configuration.

    All settings can be overridden via environment variables with the SFTP_
    prefix, e.g. SFTP_ROOT_DIR=/srv/files.  Usernames and passwords are
    comma-separated lists paired by position.
    """

    model_config = SettingsConfigDict(env_prefix="SFTP_", extra="ignore")

    port: int = 5556
    hostname: str = "127.0.0.1"
    usernames: str = ""
    passwords: str = ""
    root_dir: Path = Path("sftp-server-files")
    host_key: Path = Path("host.key")
    host_key_passphrase: str | None = None
    log_level: str = "INFO"
    log_file: Path | None = None

    @field_validator("root_dir")
    @classmethod
    def _root_dir_exists(cls, value: Path) -> Path:
        if not value.is_dir():
            raise ValueError(
                f"SFTP root dir does not exist, please create it or change the "
                f'"SFTP_ROOT_DIR" variable. Looking at: [{value}]'
            )
        return value.resolve()

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value

    @model_validator(mode="after")
    def _credentials_pair_up(self) -> "Settings":
        if len(_split(self.usernames)) != len(_split(self.passwords)):
            raise ValueError("SFTP_USERNAMES and SFTP_PASSWORDS must list the same number of entries")
        return self

    def credentials(self) -> list[tuple[str, str]]:
        """Configured (username, password) pairs."""
        return list(zip(_split(self.usernames), _split(self.passwords)))


def _split(value: str) -> list[str]:
    return value.split(",") if value else []
