from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from loop_schemas import Claims


@dataclass(slots=True)
class Account:
    """Identity record for a loop participant, including its claims."""

    uid: str
    email: str
    display_name: str | None
    phone_number: str | None
    created_at: datetime
    email_verified: bool = False
    disabled: bool = False
    claims: Claims = field(default_factory=Claims)
