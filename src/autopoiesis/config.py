"""Configuration settings for the application."""

from pathlib import Path

from pydantic_settings import BaseSettings

_DEFAULT_SEED_PATH = Path(__file__).resolve().parent / "tools" / "seed.py"


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    DEBUG: bool = False
    DATA_DIR: str = "."
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Persistence
    HISTORY_FILE: str = "history.json"  # Relative paths resolve against DATA_DIR
    SEED_PATH: str = str(_DEFAULT_SEED_PATH)

    # LLM Configuration
    PROVIDER: str = "openai"  # Options: openai, anthropic, tgi
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    TGI_ENDPOINT: str = "http://tgi:8080/generate"
    TEMPERATURE: float = 0.7
    COMPLETION_TIMEOUT: float = 120.0

    # Tool execution
    TOOL_TIMEOUT: float | None = 30.0

    # Restart protocol
    RESTART_EXIT_CODE: int = 3
    SUPERVISOR_BACKOFF: float = 1.0
    SUPERVISOR_MAX_RESTARTS: int = 0  # 0 means unlimited

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def history_path(self) -> Path:
        """Absolute location of the history file."""
        path = Path(self.HISTORY_FILE)
        if not path.is_absolute():
            path = Path(self.DATA_DIR) / path
        return path


settings = Settings()
