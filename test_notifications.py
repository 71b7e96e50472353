"""Email templates and delivery."""

import datetime
import json

import httpx
import pytest

from app import notifications
from app.errors import ConfigurationError, UpstreamError


def test_user_supplied_text_is_escaped():
    message = notifications.format_new_request_to_host(
        "host@example.com", "Anna", "<script>alert(1)</script>",
        guest_name='Jan "<b>"', guest_email="jan@example.com", guest_phone=None,
        start_date=datetime.date(2025, 1, 10), end_date=datetime.date(2025, 1, 13),
        guests_count=2, total_price=1200, message="<img src=x onerror=alert(1)>",
    )
    assert "<script>" not in message.html
    assert "&lt;script&gt;" in message.html
    assert "<img src=x" not in message.html
    assert "Jan &quot;&lt;b&gt;&quot;" in message.html
    assert "Nie podano" in message.html


def test_subject_lines_drop_line_breaks():
    message = notifications.format_cabin_status_to_host("host@example.com", None, "Chata\r\nBcc: x@evil.test", True)
    assert "\n" not in message.subject and "\r" not in message.subject
    assert message.subject == 'Twój domek "Chata Bcc: x@evil.test" został aktywowany!'


def test_polish_date_format():
    assert notifications.format_date_pl(datetime.date(2025, 1, 10)) == "piątek, 10 stycznia 2025"


def test_status_change_templates():
    approved = notifications.format_status_change_to_guest(
        "guest@example.com", "Piotr", "Leśna Chata", datetime.date(2025, 1, 10), datetime.date(2025, 1, 13),
        approved=True, host_comment="Klucz pod wycieraczką",
    )
    rejected = notifications.format_status_change_to_guest(
        "guest@example.com", "Piotr", "Leśna Chata", datetime.date(2025, 1, 10), datetime.date(2025, 1, 13),
        approved=False,
    )
    assert "zaakceptowana" in approved.subject and "Klucz pod wycieraczką" in approved.html
    assert "odrzucona" in rejected.subject and "Komentarz hosta" not in rejected.html


def test_contact_message_replies_to_sender():
    message = notifications.format_contact_message("Ola", "ola@example.com", "Pytanie", "Czy są wolne terminy?")
    assert message.reply_to == "ola@example.com"
    assert message.subject == "[Kontakt] Pytanie"


async def test_dispatch_swallows_failures(mailer, caplog):
    mailer.fail = True
    message = notifications.format_expired_to_guest("guest@example.com", "Piotr", "Leśna Chata")
    assert await notifications.dispatch(message) is False
    assert "MAILER: Failed to send" in caplog.text


async def test_dispatch_reports_success(mailer):
    message = notifications.format_missed_to_host("host@example.com", "Anna", None)
    assert await notifications.dispatch(message) is True
    assert mailer.sent == [message]
    assert "Domek" in message.subject


async def test_send_raises_failures(mailer):
    mailer.fail = True
    with pytest.raises(UpstreamError):
        await notifications.send(notifications.format_contact_message("Ola", "ola@example.com", "Hej", "Test"))


async def test_mailer_posts_to_email_api():
    captured = {}

    def handler(request):
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_123"})

    mailer = notifications.Mailer(api_key="re_test", transport=httpx.MockTransport(handler))
    message = notifications.format_contact_message("Ola", "ola@example.com", "Hej", "Test")

    assert await mailer.send(message) == "email_123"
    assert captured["auth"] == "Bearer re_test"
    assert captured["body"]["to"] == ["kontakt@naodludzie.pl"]
    assert captured["body"]["reply_to"] == "ola@example.com"


async def test_mailer_without_key():
    with pytest.raises(ConfigurationError):
        await notifications.Mailer(api_key="").send(notifications.format_missed_to_host("h@example.com", None, "X"))


async def test_mailer_reports_api_errors():
    mailer = notifications.Mailer(api_key="re_test", transport=httpx.MockTransport(lambda r: httpx.Response(422, text="bad")))
    with pytest.raises(UpstreamError, match="422"):
        await mailer.send(notifications.format_missed_to_host("h@example.com", None, "X"))


def test_new_user_notice_to_admin():
    message = notifications.format_new_user_to_admin("ola@example.com", "<Ola>", None, is_host=True)
    assert message.subject == "👤 Nowy gospodarz: <Ola>"
    assert "&lt;Ola&gt;" in message.html
    assert "Telefon" not in message.html
