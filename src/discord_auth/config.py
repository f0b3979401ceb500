# src/discord_auth/config.py

from pydantic import field_validator, AnyHttpUrl, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Union, Any
from pathlib import Path
from dotenv import load_dotenv
from loguru import logger

# .env is at the project root, two levels up from src/discord_auth/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=True)
    logger.info(f"CONFIG: Loaded .env file from: {ENV_FILE_PATH}")
else:
    logger.warning(f"CONFIG: .env file not found at {ENV_FILE_PATH}. Relying on environment variables.")


class Settings(BaseSettings):
    # === Discord application credentials ===
    CLIENT_ID: str
    CLIENT_SECRET: str
    REDIRECT_URI: AnyHttpUrl
    # Seen as a string from the env, the validator turns it into List[str]
    SCOPE: Union[str, List[str]] = ["identify"]

    # === Discord endpoints ===
    # Either the bare authorize endpoint or the full URL generated in the developer portal.
    OAUTH2_URL: AnyHttpUrl = "https://discord.com/oauth2/authorize"
    DISCORD_API_BASE_URL: AnyHttpUrl = "https://discord.com/api/v9/"

    # === Server ===
    HOST: str = "127.0.0.1"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # === Sessions and provider calls ===
    HTTP_TIMEOUT_SECONDS: float = 10.0
    SESSION_TTL_SECONDS: int = 60 * 60 * 4
    CODE_REUSE_WINDOW_SECONDS: int = 600
    COOKIE_SECURE: bool = False

    @property
    def TOKEN_URI(self) -> str:
        return f"{self.api_base}oauth2/token"

    @property
    def USER_URI(self) -> str:
        return f"{self.api_base}users/@me"

    @property
    def api_base(self) -> str:
        base = str(self.DISCORD_API_BASE_URL)
        return base if base.endswith("/") else base + "/"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False
    )

    @field_validator("SCOPE", mode='before')
    @classmethod
    def parse_scopes(cls, v: Any) -> List[str]:
        # Discord joins scopes with spaces; commas are accepted as well.
        if isinstance(v, str):
            return [scope for scope in v.replace(",", " ").split() if scope]
        if isinstance(v, list):
            return v
        raise TypeError("SCOPE: Expected a space/comma-separated string or a list.")

    @model_validator(mode='after')
    def check_scopes(self) -> 'Settings':
        if not self.SCOPE:
            raise ValueError("SCOPE must name at least one scope.")
        if not all(isinstance(item, str) for item in self.SCOPE):
            raise ValueError("All items in SCOPE must be strings.")
        return self

    @property
    def scope_string(self) -> str:
        return " ".join(self.SCOPE)


try:
    settings = Settings()
    logger.info(f"CONFIG: Redirect URI: {settings.REDIRECT_URI}")
    logger.info(f"CONFIG: Scopes: {settings.SCOPE}")
except Exception as e:
    logger.exception(f"CONFIG: Error instantiating Settings: {e}")
    raise
