from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    USE_GPU: bool = True
    GARMENT_CONFIG_PATH: str = "./configs/segformer_clothes.json"
    SALIENCY_CONFIG_PATH: Optional[str] = "./configs/u2net.json"
    ASSETS_DIRECTORY: str = "./assets"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", env_file_encoding='utf-8')


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def reset_settings_cache():
    get_settings.cache_clear()
