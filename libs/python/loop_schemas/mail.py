"""Outbound mail documents consumed by the external mailer."""

from __future__ import annotations

from pydantic import BaseModel


class MailContent(BaseModel):
    subject: str
    html: str


class MailMessage(BaseModel):
    """A queued message; ``to`` may name several recipients."""

    to: str | list[str]
    message: MailContent
