"""Configuration management using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database settings
    db_server: str = "localhost"
    db_name: str = "devcollab"
    db_user: str = "devcollab"
    db_password: str = ""
    db_port: int = 5432
    db_pool_size: int = 20
    db_max_overflow: int = 40
    db_create_tables: bool = False  # create_all() on startup (dev only)
    sql_echo: bool = False

    # JWT settings
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # WebSocket settings
    ws_max_connections_per_user: int = 20  # tabs + devices; more is abuse
    ws_max_message_size: int = 65536  # 64KB
    ws_receive_timeout: float = 45.0  # 30s client heartbeat + jitter
    ws_ping_interval: float = 30.0
    ws_token_revalidation_interval: float = 1800.0
    ws_rate_limit_messages: int = 100
    ws_rate_limit_window: float = 10.0
    ws_enforce_room_access: bool = True

    # Chat settings
    chat_message_max_length: int = 2000
    chat_edit_window_minutes: int = 15
    chat_history_page_size: int = 50

    # Redis settings (cross-worker broadcast fan-out)
    redis_url: str = "redis://localhost:6379/0"
    redis_enabled: bool = False
    redis_max_connections: int = 50
    redis_socket_timeout: float = 5.0
    redis_retry_on_timeout: bool = True
    redis_required: bool = False  # Set True for multi-worker deployment

    @property
    def database_url(self) -> str:
        """Build PostgreSQL async connection string."""
        from urllib.parse import quote_plus
        return (
            f"postgresql+asyncpg://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )


# Global settings instance
settings = Settings()
