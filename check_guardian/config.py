"""Configuration for the Check Guardian verification service."""

from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    azure_openai_endpoint: str = Field(default="")
    azure_openai_api_key: str = Field(default="")
    azure_openai_deployment_name: str = Field(default="gpt-4o")
    azure_openai_api_version: str = Field(default="2024-12-01-preview")
    analysis_timeout_seconds: float = Field(default=60.0)
    storage_backend: str = Field(default="local")  # local, azure, memory
    storage_dir: str = Field(default="data")
    azure_storage_connection_string: str = Field(default="")
    blob_container_checks: str = Field(default="check-guardian")
    templates_key: str = Field(default="check-guardian-banks")
    history_key: str = Field(default="check-guardian-history")

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
