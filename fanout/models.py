from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Dependency(BaseModel):
    """One downstream call made for every inbound request."""

    model_config = ConfigDict(frozen=True)

    method: str = Field("", description="HTTP verb; empty means GET")
    path: str = Field("", description="Fully qualified outbound URL")
    host: str = Field("", description="Host header override; empty keeps the URL's host")

    @field_validator("method", "path", "host", mode="before")
    @classmethod
    def _null_is_empty(cls, v):
        # YAML `host: ~` reads as None
        return "" if v is None else v


class DependencyConfig(BaseModel):
    dependencies: list[Dependency] = Field(default_factory=list)

    @field_validator("dependencies", mode="before")
    @classmethod
    def _null_is_empty(cls, v):
        return [] if v is None else v
