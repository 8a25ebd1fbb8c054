from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from pathlib import Path


def normalize_api_base_url(url: str) -> str:
    # Backend routes live under /api; accept the bare host as well
    url = url.strip().rstrip("/")
    if not url.endswith("/api"):
        url = f"{url}/api"
    return url


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SMARTSCHED_", env_file_encoding="utf-8")

    API_BASE_URL: str = Field(default="http://localhost:8080/api", description="Solver backend base URL")
    POLL_INTERVAL_SECONDS: float = 2.0
    SETTLE_DELAY_SECONDS: float = 2.0
    REQUEST_TIMEOUT_SECONDS: float | None = None  # transport default
    CREDENTIAL_STORE_PATH: Path = Path.home() / ".smartsched" / "session.json"
    LOG_DIR: Path | None = None
    LOG_LEVEL: str = "INFO"

    # local stub solver
    STUB_HOST: str = "127.0.0.1"
    STUB_PORT: int = 8080
    STUB_TICKS_PER_PHASE: int = 1
    STUB_JOB_TTL_MINUTES: int = 120

    @field_validator("API_BASE_URL")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        return normalize_api_base_url(value)

    @field_validator("CREDENTIAL_STORE_PATH")
    @classmethod
    def _expand_store_path(cls, value: Path) -> Path:
        return Path(value).expanduser()

    @property
    def root_url(self) -> str:
        return self.API_BASE_URL[: -len("/api")]


settings = Settings()
