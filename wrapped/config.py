from datetime import timedelta

from pydantic_settings import BaseSettings

PRODUCTION_ORIGIN = "https://warped.raja-house.com"
DEVELOPMENT_ORIGINS = [PRODUCTION_ORIGIN, "http://localhost:5173"]


class Settings(BaseSettings):
    jellyfin_url: str = "http://localhost:8096"
    jellyfin_api_key: str = ""
    jwt_secret: str = ""
    host: str = "0.0.0.0"
    port: int = 3001
    environment: str = "development"
    session_ttl_hours: int = 24
    session_sweep_interval_minutes: int = 60
    item_batch_size: int = 100
    request_timeout_seconds: float = 30.0
    query_timeout_seconds: float = 60.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def jellyfin_base_url(self) -> str:
        """Server URL without a trailing slash."""
        return self.jellyfin_url.rstrip("/")

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_ttl_hours)

    @property
    def cors_origins(self) -> list[str]:
        """Allowed browser origins for the current environment."""
        if self.environment == "production":
            return [PRODUCTION_ORIGIN]
        return list(DEVELOPMENT_ORIGINS)


settings = Settings()
