"""Process configuration for the Azure DevOps MCP server.

Values are read from the environment (prefix ``AZURE_DEVOPS_``) and an
optional ``.env`` file in the working directory.
"""
import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CHUNK_SIZE = 4 * 1024 * 1024
DEFAULT_CHUNKED_THRESHOLD = 100 * 1024 * 1024


class Settings(BaseSettings):
    """Settings for the Azure DevOps connection and upload behavior."""

    model_config = SettingsConfigDict(
        env_prefix="AZURE_DEVOPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    org_url: str = Field(..., description="Organization URL, e.g. https://dev.azure.com/YourOrg")
    pat: str = Field(..., description="Personal Access Token")
    project: Optional[str] = Field(None, description="Default project; skips the project lookup when set")
    api_version: str = "7.1"
    upload_chunk_size: int = Field(DEFAULT_CHUNK_SIZE, gt=0)
    upload_threshold: int = Field(DEFAULT_CHUNKED_THRESHOLD, ge=0)
    timeout: float = Field(30.0, gt=0)
    log_level: str = "INFO"

    @field_validator("org_url")
    @classmethod
    def strip_org_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("AZURE_DEVOPS_ORG_URL must not be empty")
        return v

    @field_validator("pat")
    @classmethod
    def require_pat(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("AZURE_DEVOPS_PAT must not be empty")
        return v

    @field_validator("project")
    @classmethod
    def blank_project_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if not isinstance(logging.getLevelName(v), int):
            raise ValueError(f"AZURE_DEVOPS_LOG_LEVEL must be a logging level name, got '{v}'")
        return v


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
