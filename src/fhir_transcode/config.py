"""Server configuration for FHIR transcoding.

Uses Pydantic settings so the local server address and the choice-type
policy can be provided via environment variables or a local `.env`
file.  The settings are read once and shared read-only afterwards.
"""
from functools import lru_cache
from typing import Literal, Optional
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    # Base URL of this FHIR server; canonical URLs are built under it
    # and references on the same host are treated as local.
    fhir_url: str = Field(
        "http://localhost/apis/default/fhir/", alias="FHIR_SERVER_URL"
    )

    # What to do when a lenient client populates several keys of one
    # choice family (medicationCodeableConcept + medicationReference).
    choice_policy: Literal["first-match", "reject"] = Field(
        "first-match", alias="FHIR_CHOICE_POLICY"
    )

    @field_validator("fhir_url")
    @classmethod
    def _ensure_trailing_slash(cls, value: str) -> str:
        return value if value.endswith("/") else value + "/"

    @property
    def host(self) -> Optional[str]:
        return urlsplit(self.fhir_url).hostname


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    """Return a cached ServerConfig instance.

    Using an LRU cache avoids re-parsing environment variables on every request.
    """
    return ServerConfig()
