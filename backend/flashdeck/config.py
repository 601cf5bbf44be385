from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    flashdeck_data_dir: Path = Path.home() / ".flashdeck" / "data"
    sqlite_filename: str = "flashdeck.db"
    log_level: str = "info"

    # Per-user admission limits (sliding window)
    rate_limiting_enabled: bool = True
    deck_creation_max_requests: int = 10
    deck_creation_window_seconds: float = 60.0
    flashcard_creation_max_requests: int = 50
    flashcard_creation_window_seconds: float = 60.0
    ai_generation_max_requests: int = 10
    ai_generation_window_seconds: float = 60.0 * 60
    limiter_registry_max_size: int = 10_000
    limiter_registry_ttl_seconds: float = 2 * 60.0 * 60

    scheduling_update_attempts: int = 2
    review_queue_limit: int = 1000

    # OpenAI-compatible chat completions endpoint
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_api_key: str = ""
    llm_model: str = "openai/gpt-4o-mini"
    llm_timeout_seconds: float = 30.0
    llm_max_tokens: int = 4000

    model_config = {"env_prefix": "FLASHDECK_"}


settings = Settings()
