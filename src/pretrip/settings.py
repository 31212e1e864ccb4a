"""Runtime configuration read from ``PRETRIP_*`` environment variables or ``.env``."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Storage paths, collaborator timeouts, and drill strictness for one app run."""

    db_path: str = ".pretrip/progress.db"
    org_scripts_dir: str = ""  # <dir>/<org_id>/<class-token>.json overrides; empty disables
    resolve_timeout_seconds: float = 5.0
    persist_timeout_seconds: float = 5.0
    type_phrase_mode: Literal["strict", "lenient"] = "strict"
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(env_prefix="PRETRIP_", env_file=".env", env_file_encoding="utf-8", extra="ignore")
