"""Settings (pydantic-settings, loaded from env vars)."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # --- Vision model ---
    ANTHROPIC_API_KEY: str = ""
    VISION_MODEL: str = "claude-sonnet-4-5"
    VISION_MAX_TOKENS: int = 1500
    MAX_VISION_TIMEOUT_SECONDS: float = 60.0

    # --- Backend platform ---
    BACKEND_URL: str = "http://localhost:54321"
    BACKEND_ANON_KEY: str = ""
    ANALYSIS_FUNCTION_PATH: str = "/functions/v1/analyze-screenshot"
    HTTP_TIMEOUT_SECONDS: float = 90.0

    # --- Image limits ---
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024
    ALLOWED_IMAGE_TYPES: list[str] = ["jpeg", "jpg", "png", "gif", "webp"]

    # --- Parser ---
    DEFAULT_CONFIDENCE: int = 75

    # --- Progress simulation ---
    PROGRESS_TICK_SECONDS: float = 0.3
    PROGRESS_MAX_STEP: float = 15.0
    PROGRESS_CEILING: float = 90.0

    # --- Server ---
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    model_config = {"env_prefix": "", "case_sensitive": True}
