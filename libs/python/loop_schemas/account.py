"""Claims and profile documents attached to a loop participant."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    admin = "admin"
    chain_admin = "chainAdmin"


class Claims(BaseModel):
    """Authorization record stored alongside an identity account.

    A missing ``role`` means the account holds no elevated role.
    """

    model_config = ConfigDict(populate_by_name=True)

    role: Role | None = None
    chain_id: str | None = Field(default=None, alias="chainId")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UserProfile(BaseModel):
    """Supplemental participant data kept in the ``users`` collection."""

    model_config = ConfigDict(populate_by_name=True)

    chain_id: str | None = Field(default=None, alias="chainId")
    address: str | None = None
    newsletter: bool | None = None
    interested_sizes: list[str] | None = Field(default=None, alias="interestedSizes")

    @classmethod
    def from_document(cls, data: dict[str, Any] | None) -> "UserProfile":
        return cls.model_validate(data or {})

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class InterestedUser(BaseModel):
    """Newsletter subscriber captured from the public site."""

    name: str
    email: str
