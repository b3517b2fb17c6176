from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str
    jwt_secret_key: str
    jwt_refresh_secret_key: str
    access_token_expire_minutes: int = 30
    refresh_token_expire_days: int = 7
    resend_api_key: str = ""
    email_from: str = "MDShare <onboarding@resend.dev>"
    frontend_url: str = "http://localhost:3000"
    github_client_id: str = ""
    github_client_secret: str = ""
    avatar_base_url: str = "https://api.dicebear.com/7.x/micah/svg"
    rate_limit_enabled: bool = True
    sentry_dsn: str = ""
    environment: str = ""
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
