from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from the environment"""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Falls back to SQLite for local development
    database_url: str = "sqlite:///./coparent_service/db/coparent_service.db"
    secret_key: str = "your_secret_key"
    jwt_algorithm: str = "HS256"
    frontend_url: str = "http://localhost:3000"
    default_currency: str = "USD"


settings = Settings()
