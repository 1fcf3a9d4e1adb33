from functools import lru_cache
from typing import Literal, Optional
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["development", "production"]

def _env_file_for(app_env: EnvName) -> str:
    return ".env.development" if app_env == "development" else ".env.production"

class Settings(BaseSettings):

    # Core
    APP_ENV: EnvName = "development"
    APP_NAME: str = "ProductDiscovery"
    DEBUG: bool = False
    GIT_SHA: str = "unknown"

    # Mongo (primary store + Atlas Search index)
    MONGO_URI: str
    MONGO_DB: str
    MONGO_TLS: bool = True
    SEARCH_INDEX: str = "products_search"

    # Redis (optional: locks + caches)
    REDIS_URL: Optional[str] = None

    # Timeouts
    search_timeout_s: float = 2.5              # one Atlas Search call
    store_timeout_s: float = 5.0               # one primary store call

    # Cache config
    similar_cache_ttl: int = 10 * 60            # 10 minutes
    filter_options_cache_ttl: int = 5 * 60      # 5 minutes

    # Favorite toggle lock (per user/product pair)
    favorite_lock_ttl: int = 10                 # seconds
    favorite_lock_wait_s: int = 3               # seconds

    # CORS (CSV)
    ALLOWED_ORIGINS: str = ""

    # pydantic-settings config will be set dynamically in the factory below
    model_config = SettingsConfigDict(env_file=None, case_sensitive=True)

@lru_cache
def get_settings() -> Settings:
    """
    Factory that chooses the right .env file based on APP_ENV.
    Cache makes it cheap to inject via FastAPI dependencies.
    """
    app_env: EnvName = os.getenv("APP_ENV", "development")  # earliest switch
    env_file = _env_file_for(app_env)
    return Settings(
                _env_file=env_file,  # load .env.development or .env.production
                _env_file_encoding="utf-8"
    )
