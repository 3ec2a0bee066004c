from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Listen port, the one knob deployments are expected to turn
    PORT: int = 3000
    HOST: str = "0.0.0.0"
    CORS_ORIGINS: list[str] = ["*"]
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Client-side timers (milliseconds)
    TYPING_TIMEOUT_MS: int = 1000
    RECONNECT_BASE_DELAY_MS: int = 2000
    RECONNECT_MAX_ATTEMPTS: int = 5

    model_config = {"env_file": ".env"}


settings = Settings()
