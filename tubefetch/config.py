import logging

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Client configuration loaded from environment variables."""

    # The one user-facing switch: verbose diagnostic output.
    debug: bool = False

    request_timeout: int = 30
    # Transport-level retries on 429/5xx and network errors. The resolver
    # itself never retries.
    max_retries: int = 0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    )
    max_playlist_pages: int = 500

    class Config:
        env_prefix = "TUBEFETCH_"
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure_logging(debug: bool | None = None):
    """Install the package log format; DEBUG level when debug is on."""
    if debug is None:
        debug = get_settings().debug
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("tubefetch").setLevel(logging.DEBUG if debug else logging.INFO)
