"""
Application configuration
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "VoiceQuiz Relay"
    APP_VERSION: str = "1.0.0"
    # Debug switches the console log renderer on; keep False in production
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    HOST: str = "0.0.0.0"  # nosec B104 - container deployment
    PORT: int = 8080

    # OpenAI
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_TIMEOUT_SEC: int = 30

    # Prompt completions (Mode A hints, Mode B guesses)
    COMPLETION_MODEL: str = "gpt-4o-mini"
    COMPLETION_TEMPERATURE: float = 0.7
    DESCRIBE_MAX_TOKENS: int = 100
    GUESS_MAX_TOKENS: int = 50

    # OpenAI Realtime API settings (ephemeral credentials + WebRTC calls)
    REALTIME_MODEL: str = "gpt-realtime"
    REALTIME_VOICE: str = "alloy"
    REALTIME_TRANSCRIPTION_MODEL: str = "whisper-1"
    REALTIME_CLIENT_SECRETS_URL: str = "https://api.openai.com/v1/realtime/client_secrets"
    REALTIME_CALLS_URL: str = "https://api.openai.com/v1/realtime/calls"
    REALTIME_TOKEN_EXPIRY_SEC: int = 600

    # Relay rate limiting (slowapi / limits syntax)
    RATE_LIMIT: str = "100 per 10 minutes"

    # Client side: relay location and timeouts
    RELAY_BASE_URL: str = "http://localhost:8080"
    RELAY_TIMEOUT_SEC: float = 30.0
    CONNECT_TIMEOUT_SEC: float = 20.0

    # Game rules
    ROUND_DURATION_SEC: float = 60.0
    MAX_PASS_COUNT: int = 2

    # Voice logging verbosity: MINIMAL | STANDARD | VERBOSE | DEBUG
    VOICE_LOG_LEVEL: str = "STANDARD"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


# Global settings instance
settings = Settings()
