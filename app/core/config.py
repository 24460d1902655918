from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # Database
    db_url: str = Field("sqlite+aiosqlite:///./tokens.sqlite3", alias="DB_URL")
    store_timeout: float = Field(5.0, alias="STORE_TIMEOUT")

    # Token signing
    jwt_alg: str = Field("HS256", alias="JWT_ALG")
    token_secret: str | None = Field(None, alias="TOKEN_SECRET")  # base64, >= 32 bytes
    token_ttl: int = Field(86400, alias="TOKEN_TTL")  # seconds

    # Header whose value a token is bound to at login
    binding_header: str = Field("User-Agent", alias="BINDING_CONTEXT_HEADER")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(True, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()
