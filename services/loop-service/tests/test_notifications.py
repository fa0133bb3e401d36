from __future__ import annotations

from app.notifications import MailQueue, build_verification_link


def test_verification_link_appends_token_to_base():
    assert (
        build_verification_link("https://app.clothingloop.org/", "abc")
        == "https://app.clothingloop.org/verify-email?token=abc"
    )


def test_verification_link_fills_template_placeholder():
    assert (
        build_verification_link("https://app.clothingloop.org/users/verify/{token}", "abc")
        == "https://app.clothingloop.org/users/verify/abc"
    )


def test_mail_queue_escapes_user_values(documents):
    queue = MailQueue(documents)

    mail_id = queue.send_newsletter_welcome(email="x@clothingloop.org", name='<img src="x">')

    stored = documents.get("mail", mail_id)
    assert stored["to"] == "x@clothingloop.org"
    assert "<img" not in stored["message"]["html"]
    assert "&lt;img src=&#34;x&#34;&gt;" in stored["message"]["html"]
