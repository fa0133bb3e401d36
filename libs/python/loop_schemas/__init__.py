"""Shared schema exports."""

from .account import Claims, InterestedUser, Role, UserProfile
from .chain import Chain
from .mail import MailContent, MailMessage

__all__ = [
    "Chain",
    "Claims",
    "InterestedUser",
    "MailContent",
    "MailMessage",
    "Role",
    "UserProfile",
]
