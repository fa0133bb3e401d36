"""Chain (loop) document contract."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Chain(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    address: str = ""
    latitude: float
    longitude: float
    radius: float
    categories: dict[str, list[str]] = Field(default_factory=dict)
    published: bool = False
    chain_admin: str = Field(..., alias="chainAdmin")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
