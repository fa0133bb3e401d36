"""Transactional mail, queued as documents for the external mailer."""

from __future__ import annotations

import logging
from typing import Sequence

from jinja2 import DictLoader, Environment, select_autoescape
from prometheus_client import Counter

from loop_schemas import MailContent, MailMessage

from .domain.account import Account
from .repository import DocumentRepository

logger = logging.getLogger(__name__)

MAIL_COLLECTION = "mail"

MAIL_ENQUEUED = Counter(
    "loop_mail_enqueued_total",
    "Messages written to the outbound mail queue.",
    ["template"],
)

_TEMPLATES = {
    "verify_email.html": (
        "Hi {{ name }},<br><br>"
        'Click <a href="{{ link }}">here</a> to verify your e-mail and activate '
        "your clothing-loop account.<br><br>"
        "Regards,<br>The clothing-loop team!"
    ),
    "participant_joined.html": """
<p>Hi, {{ admin_name }}</p>
<p>A new participant just joined your loop.</p>
<p>Please find below the participant's contact information:</p>
<ul>
  <li>Name: {{ name }}</li>
  <li>Email: {{ email }}</li>
  <li>Phone: {{ phone }}</li>
</ul>
<p>Best,</p>
<p>The Clothing Loop team</p>
""",
    "contact_form.html": """
<h3>Name</h3>
<p>{{ name }}</p>
<h3>Email</h3>
<p>{{ email }}</p>
<h3>Message</h3>
<p>{{ message }}</p>
""",
    "contact_confirmation.html": """
<p>Hi {{ name }},</p>
<p>Thank you for your message!</p>
<p>You wrote:</p>
<p>{{ message }}</p>
<p>We will contact you as soon as possible.</p>
<p>Regards,</p>
<p>The clothing-loop team!</p>
""",
    "newsletter_welcome.html": """
<p>Hi {{ name }},</p>
<p>Thank you for subscribing!</p>
<p>Regards,</p>
<p>The clothing-loop team!</p>
""",
}

_env = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(enabled_extensions=("html",), default=True),
)


def build_verification_link(base: str, token: str) -> str:
    """Construct the verification link from the configured base domain.

    A base containing ``{token}`` is used as a template; otherwise the token is
    appended as a query parameter to ``<base>/verify-email``.
    """
    if "{token}" in base:
        return base.replace("{token}", token)
    return f"{base.rstrip('/')}/verify-email?token={token}"


class MailQueue:
    """Renders mail templates and appends the result to the mail collection."""

    def __init__(self, documents: DocumentRepository, collection: str = MAIL_COLLECTION) -> None:
        self._documents = documents
        self._collection = collection

    def enqueue(self, to: str | Sequence[str], subject: str, template: str, **context) -> str:
        html = _env.get_template(template).render(**context)
        recipients = to if isinstance(to, str) else list(to)
        message = MailMessage(to=recipients, message=MailContent(subject=subject, html=html))
        mail_id = self._documents.add(self._collection, message.model_dump())
        MAIL_ENQUEUED.labels(template=template).inc()
        logger.debug("queued mail %s (%s) for %s", mail_id, template, recipients)
        return mail_id

    def send_verification(self, *, email: str, name: str, link: str) -> str:
        return self.enqueue(
            email,
            "Verify e-mail for clothing chain",
            "verify_email.html",
            name=name,
            link=link,
        )

    def send_participant_joined(self, *, chain_admin: Account, participant: Account) -> str:
        return self.enqueue(
            chain_admin.email,
            "A participant just joined your Loop!",
            "participant_joined.html",
            admin_name=chain_admin.display_name or "",
            name=participant.display_name or "",
            email=participant.email,
            phone=participant.phone_number or "",
        )

    def send_contact_form(
        self, *, recipients: Sequence[str], name: str, email: str, message: str
    ) -> str:
        return self.enqueue(
            recipients,
            f"ClothingLoop Contact Form - {name}",
            "contact_form.html",
            name=name,
            email=email,
            message=message,
        )

    def send_contact_confirmation(self, *, email: str, name: str, message: str) -> str:
        return self.enqueue(
            email,
            "Thank you for contacting Clothing-Loop",
            "contact_confirmation.html",
            name=name,
            message=message,
        )

    def send_newsletter_welcome(self, *, email: str, name: str) -> str:
        return self.enqueue(
            email,
            "Thank you for subscribing to Clothing Loop",
            "newsletter_welcome.html",
            name=name,
        )
