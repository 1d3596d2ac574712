"""Application configuration with environment variables."""

from urllib.parse import urlencode

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.3.0"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # Public origin of this service, embedded in every provider callback URL
    SERVER_ORIGIN: str = "http://localhost:8000"

    # Shared secret: Trello secretId query parameter and GitHub HMAC key
    WEBHOOK_SECRET: str = ""

    # Internal guild administration endpoints (bot process + dashboard)
    INTERNAL_SECRET: str = ""

    # Token Encryption (for storing provider credentials)
    TOKEN_ENCRYPTION_KEY: str = ""  # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"

    # Discord bot
    DISCORD_BOT_TOKEN: str = ""
    DISCORD_API_BASE_URL: str = "https://discord.com/api/v10"
    DISCORD_HTTP_TIMEOUT: float = 5.0

    # Provider APIs
    TRELLO_API_BASE_URL: str = "https://api.trello.com/1"
    GITHUB_API_BASE_URL: str = "https://api.github.com"
    GOOGLE_CALENDAR_API_BASE_URL: str = "https://www.googleapis.com/calendar/v3"
    GOOGLE_OAUTH_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    PROVIDER_HTTP_TIMEOUT: float = 5.0
    PROVIDER_MAX_ATTEMPTS: int = 3

    # Inbound webhooks
    WEBHOOK_MAX_PAYLOAD_BYTES: int = 1024 * 1024  # 1 MB
    RATE_LIMIT_CREDENTIALS: int = 10  # credential submissions per minute per client

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    @property
    def origin(self) -> str:
        return self.SERVER_ORIGIN.rstrip("/")

    def trello_callback_url(self, guild_id: str) -> str:
        query = urlencode({"guildId": guild_id, "secretId": self.WEBHOOK_SECRET})
        return f"{self.origin}/trello-webhook?{query}"

    def github_callback_url(self, guild_id: str) -> str:
        return f"{self.origin}/github-webhook?{urlencode({'guildId': guild_id})}"

    def google_callback_url(self, guild_id: str) -> str:
        return f"{self.origin}/google-webhook?{urlencode({'guildId': guild_id})}"


settings = Settings()
