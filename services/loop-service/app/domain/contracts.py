"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass

from loop_schemas import Role


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Identity and claims of the authenticated caller of a request."""

    account_id: str
    role: Role | None = None
    chain_id: str | None = None


@dataclass(slots=True)
class CreateUserInput:
    email: str
    name: str
    phone_number: str | None = None
    chain_id: str | None = None
    newsletter: bool = False
    interested_sizes: list[str] | None = None
    address: str | None = None


@dataclass(slots=True)
class CreateChainInput:
    """Chain attributes submitted on behalf of the account ``uid``."""

    uid: str
    name: str
    latitude: float
    longitude: float
    radius: float
    description: str = ""
    address: str = ""
    categories: dict[str, list[str]] | None = None


@dataclass(slots=True)
class UpdateUserInput:
    """Profile fields to change; ``None`` leaves the stored value untouched."""

    uid: str
    name: str | None = None
    phone_number: str | None = None
    newsletter: bool | None = None
    interested_sizes: list[str] | None = None
    address: str | None = None


@dataclass(slots=True)
class UserView:
    """Merged account and profile data returned by the user lookups."""

    uid: str
    email: str
    name: str | None
    phone_number: str | None
    email_verified: bool
    chain_id: str | None
    address: str | None
    newsletter: bool | None
    interested_sizes: list[str] | None
    role: Role | None
