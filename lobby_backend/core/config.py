# lobby_backend/core/config.py
import os
from dotenv import load_dotenv


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Setup environment variables.
        - REDIS_HOST / REDIS_PORT / REDIS_DB / REDIS_PASSWORD where the chat data lives
        - REDIS_SSL use rediss:// instead of redis://
        - REDIS_URL full connection url, overrides the pieces above when set
        - HISTORY_PAGE_SIZE how many lobby messages a new connection receives
        - HOST / PORT where uvicorn listens
        - CORS_ORIGINS comma separated list of allowed origins
    """

    # Load environment variables from the .env file
    load_dotenv()

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    REDIS_SSL: bool = _as_bool(os.getenv("REDIS_SSL", "false"))
    REDIS_URL: str = os.getenv("REDIS_URL", "")

    HISTORY_PAGE_SIZE: int = int(os.getenv("HISTORY_PAGE_SIZE", "50"))

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    CORS_ORIGINS: list = [
        origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
    ]

    @property
    def redis_url(self) -> str:
        if self.REDIS_URL:
            return self.REDIS_URL
        scheme = "rediss" if self.REDIS_SSL else "redis"
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"{scheme}://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()
