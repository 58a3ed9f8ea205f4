# collage/config/settings.py
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # API
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Collage Service"

    # CORS
    ALLOWED_HOSTS: List[str] = ["*"]

    # Collage
    COLLAGE_PROVIDER: str = "openai"
    DEFAULT_CANVAS_WIDTH: int = 1024
    DEFAULT_CANVAS_HEIGHT: int = 1400
    MAX_UPLOADS: int = 3
    MAX_STICKERS: int = 8
    ENDPOINT_TIMEOUT_SECONDS: float = 600

    # OpenAI
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com"
    OPENAI_CHAT_MODEL: str = "gpt-4o"
    OPENAI_IMAGE_MODEL: str = "gpt-image-1"

    # Doubao (Volcengine Ark)
    DOUBAO_API_KEY: Optional[str] = None
    DOUBAO_BASE_URL: str = "https://ark.cn-beijing.volces.com"
    DOUBAO_IMAGE_MODEL: str = "doubao-seedream-4-5-251128"

    # Outbound calls
    CHAT_TIMEOUT_SECONDS: float = 60
    IMAGES_TIMEOUT_SECONDS: float = 120
    IMAGE_RETRIES: int = 3
    IMAGE_RETRY_BASE_DELAY: float = 0.6
    AI_PROXY: Optional[str] = None

    # Env
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()
