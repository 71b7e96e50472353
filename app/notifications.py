# FILE: app/notifications.py
# ==============================================================================
# Transactional email. The format_* functions build a message for each
# template kind; every user-supplied string goes through esc() first.
# Delivery uses the Resend HTTP API.
#
# dispatch() is for side-effect notifications: failures are logged and
# swallowed so they never undo the state change that triggered them.
# send() raises, for callers whose whole job is the email.
# ==============================================================================
import datetime
import html
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from . import config
from .errors import ConfigurationError, UpstreamError

POLISH_WEEKDAYS = ["poniedziałek", "wtorek", "środa", "czwartek", "piątek", "sobota", "niedziela"]
POLISH_MONTHS = [
    "stycznia", "lutego", "marca", "kwietnia", "maja", "czerwca",
    "lipca", "sierpnia", "września", "października", "listopada", "grudnia",
]


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    html: str
    reply_to: Optional[str] = None


class Mailer:
    def __init__(self, api_key: Optional[str] = None, api_url: str = config.RESEND_API_URL,
                 sender: str = config.EMAIL_FROM, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key if api_key is not None else config.RESEND_API_KEY
        self.api_url = api_url
        self.sender = sender
        self.transport = transport

    async def send(self, message: EmailMessage) -> Optional[str]:
        if not self.api_key:
            raise ConfigurationError("RESEND_API_KEY is not set")
        payload = {
            "from": self.sender,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        if message.reply_to:
            payload["reply_to"] = message.reply_to
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                response = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Email delivery failed: {e}")
        if response.status_code >= 400:
            raise UpstreamError(f"Email delivery failed: {response.status_code} {response.text[:200]}")
        return response.json().get("id")


mailer = Mailer()


async def send(message: EmailMessage) -> Optional[str]:
    email_id = await mailer.send(message)
    logging.info(f"MAILER: Sent '{message.subject}' to {', '.join(message.to)} (id {email_id}).")
    return email_id


async def dispatch(message: Optional[EmailMessage]) -> bool:
    """Sends a side-effect notification. Never raises."""
    if message is None or not message.to:
        return False
    try:
        await send(message)
        return True
    except Exception as e:
        logging.error(f"MAILER: Failed to send '{message.subject}' to {', '.join(message.to)}.", exc_info=e)
        return False


# --- Helpers ---

def esc(value) -> str:
    if value is None:
        return ""
    return html.escape(str(value), quote=True)


def clean_subject(text: str) -> str:
    return " ".join(str(text).replace("\r", " ").replace("\n", " ").split())


def format_date_pl(value: datetime.date) -> str:
    return f"{POLISH_WEEKDAYS[value.weekday()]}, {value.day} {POLISH_MONTHS[value.month - 1]} {value.year}"


def _layout(title: str, subtitle: str, body: str, color: str = "#2d5a3d") -> str:
    return f"""<!DOCTYPE html>
<html lang="pl">
<head>
  <meta charset="utf-8">
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background: {color}; color: white; padding: 30px; border-radius: 12px 12px 0 0; }}
    .content {{ background: #f9f9f9; padding: 30px; border-radius: 0 0 12px 12px; }}
    .details {{ background: white; padding: 20px; border-radius: 8px; margin: 20px 0; }}
    .message-box {{ background: #e8f4eb; padding: 15px; border-radius: 8px; margin: 20px 0; }}
    .footer {{ text-align: center; color: #999; font-size: 12px; margin-top: 20px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1 style="margin: 0;">{title}</h1>
      <p style="margin: 10px 0 0 0; opacity: 0.9;">{subtitle}</p>
    </div>
    <div class="content">
      {body}
      <div class="footer">
        <p>Ta wiadomość została wysłana automatycznie przez NaOdludzie.</p>
      </div>
    </div>
  </div>
</body>
</html>"""


def _greeting(name: Optional[str], fallback: str = "") -> str:
    safe = esc(name) or fallback
    return f"<p>Cześć{' ' + safe if safe else ''}!</p>"


def _details(rows) -> str:
    lines = "".join(f"<p><strong>{label}:</strong> {value}</p>" for label, value in rows)
    return f'<div class="details">{lines}</div>'


# --- Booking request templates ---

def format_new_request_to_host(host_email: str, host_name: Optional[str], cabin_title: str,
                               guest_name: str, guest_email: Optional[str], guest_phone: Optional[str],
                               start_date: datetime.date, end_date: datetime.date,
                               guests_count: int, total_price: int,
                               message: Optional[str] = None) -> EmailMessage:
    body = (
        _greeting(host_name, "Gospodarzu")
        + f"<p>Otrzymałeś nową prośbę o rezerwację od <strong>{esc(guest_name)}</strong>.</p>"
        + _details([
            ("Gość", esc(guest_name)),
            ("Email gościa", esc(guest_email or "Nie podano")),
            ("Telefon gościa", esc(guest_phone or "Nie podano")),
            ("Przyjazd", format_date_pl(start_date)),
            ("Wyjazd", format_date_pl(end_date)),
            ("Liczba gości", guests_count),
            ("Szacowana kwota", f"{total_price} zł"),
        ])
        + (f'<div class="message-box"><strong>Wiadomość od gościa:</strong><p>{esc(message)}</p></div>' if message else "")
        + "<p>Zaloguj się do panelu hosta, aby zaakceptować lub odrzucić rezerwację.</p>"
    )
    return EmailMessage(
        to=[host_email],
        subject=clean_subject(f"Nowa prośba o rezerwację: {cabin_title}"),
        html=_layout("🏕️ Nowa prośba o rezerwację!", esc(cabin_title), body),
    )


def format_anonymous_request_to_host(host_email: str, host_name: Optional[str], cabin_title: str,
                                     guest_name: str, guest_email: str, guest_phone: str,
                                     start_date: datetime.date, end_date: datetime.date,
                                     guests_count: int, total_price: int,
                                     message: Optional[str] = None) -> EmailMessage:
    body = (
        _greeting(host_name, "Gospodarzu")
        + "<p><em>Zapytanie od niezalogowanego użytkownika.</em> Skontaktuj się z gościem bezpośrednio.</p>"
        + _details([
            ("Gość", esc(guest_name)),
            ("Email gościa", esc(guest_email)),
            ("Telefon gościa", esc(guest_phone)),
            ("Przyjazd", format_date_pl(start_date)),
            ("Wyjazd", format_date_pl(end_date)),
            ("Liczba gości", guests_count),
            ("Szacowana kwota", f"{total_price} zł"),
        ])
        + (f'<div class="message-box"><strong>Wiadomość od gościa:</strong><p>{esc(message)}</p></div>' if message else "")
    )
    return EmailMessage(
        to=[host_email],
        subject=clean_subject(f"Nowe zapytanie (gość niezalogowany): {cabin_title}"),
        html=_layout("🏕️ Nowe zapytanie o rezerwację!", esc(cabin_title), body),
        reply_to=guest_email,
    )


def format_status_change_to_guest(guest_email: str, guest_name: Optional[str], cabin_title: str,
                                  start_date: datetime.date, end_date: datetime.date,
                                  approved: bool, host_comment: Optional[str] = None) -> EmailMessage:
    if approved:
        title, color = "✅ Rezerwacja zaakceptowana!", "#16a34a"
        intro = f"<p>Host zaakceptował Twoją prośbę o rezerwację domku <strong>„{esc(cabin_title)}”</strong>.</p>"
        subject = f"Twoja rezerwacja \"{cabin_title}\" została zaakceptowana"
    else:
        title, color = "Rezerwacja odrzucona", "#dc2626"
        intro = f"<p>Niestety, host odrzucił Twoją prośbę o rezerwację domku <strong>„{esc(cabin_title)}”</strong>.</p>"
        subject = f"Twoja prośba o rezerwację \"{cabin_title}\" została odrzucona"
    body = (
        _greeting(guest_name)
        + intro
        + _details([("Przyjazd", format_date_pl(start_date)), ("Wyjazd", format_date_pl(end_date))])
        + (f'<div class="message-box"><strong>Komentarz hosta:</strong><p>{esc(host_comment)}</p></div>' if host_comment else "")
    )
    return EmailMessage(to=[guest_email], subject=clean_subject(subject),
                        html=_layout(title, esc(cabin_title), body, color))


def format_expired_to_guest(guest_email: str, guest_name: Optional[str], cabin_title: Optional[str]) -> EmailMessage:
    title = cabin_title or "Domek"
    body = (
        _greeting(guest_name)
        + f"<p>Niestety, Twoje zapytanie o rezerwację domku <strong>\"{esc(title)}\"</strong> wygasło.</p>"
        + "<p>Host nie odpowiedział na Twoje zapytanie w ciągu 24 godzin, dlatego zostało ono automatycznie anulowane.</p>"
        + "<p>Zachęcamy do przeglądania innych dostępnych domków na naszej stronie!</p>"
    )
    return EmailMessage(
        to=[guest_email],
        subject=clean_subject(f"⏰ Twoje zapytanie o \"{title}\" wygasło"),
        html=_layout("⏰ Zapytanie wygasło", esc(title), body, "#d97706"),
    )


def format_missed_to_host(host_email: str, host_name: Optional[str], cabin_title: Optional[str]) -> EmailMessage:
    title = cabin_title or "Domek"
    body = (
        _greeting(host_name)
        + f"<p>Zapytanie o rezerwację domku <strong>\"{esc(title)}\"</strong> zostało automatycznie anulowane.</p>"
        + "<p>Powodem jest brak odpowiedzi w ciągu 24 godzin od otrzymania zapytania.</p>"
        + '<p style="color: #666; font-size: 14px;">Pamiętaj, aby regularnie sprawdzać panel hosta i odpowiadać na zapytania!</p>'
    )
    return EmailMessage(
        to=[host_email],
        subject=clean_subject(f"⚠️ Przegapione zapytanie o \"{title}\""),
        html=_layout("⚠️ Przegapione zapytanie", esc(title), body, "#dc2626"),
    )


# --- Listing templates ---

def format_cabin_status_to_host(host_email: str, host_name: Optional[str], cabin_title: str,
                                active: bool) -> EmailMessage:
    if active:
        header, color = "Domek aktywowany!", "#16a34a"
        subject = f"Twój domek \"{cabin_title}\" został aktywowany!"
        text = (f"<p>Gratulacje! Twój domek <strong>„{esc(cabin_title)}”</strong> został zaakceptowany "
                "i jest teraz widoczny dla gości na platformie NaOdludzie.</p>"
                "<p>Możesz teraz oczekiwać zapytań rezerwacyjnych od zainteresowanych gości.</p>")
    else:
        header, color = "Wymagane poprawki", "#dc2626"
        subject = f"Domek \"{cabin_title}\" wymaga poprawek"
        text = (f"<p>Niestety, Twój domek <strong>„{esc(cabin_title)}”</strong> nie został zaakceptowany.</p>"
                "<p>Prosimy o sprawdzenie i zaktualizowanie informacji o domku, "
                "a następnie ponowne przesłanie do weryfikacji.</p>")
    return EmailMessage(
        to=[host_email],
        subject=clean_subject(subject),
        html=_layout(header, esc(cabin_title), _greeting(host_name, "Gospodarzu") + text, color),
    )


def format_cabin_expired_to_host(host_email: str, host_name: Optional[str], cabin_title: str) -> EmailMessage:
    body = (
        _greeting(host_name)
        + f"<p>Twoja oferta domku <strong>\"{esc(cabin_title)}\"</strong> wygasła po {config.CABIN_ACTIVE_DAYS} dniach.</p>"
        + "<p>Oferta została automatycznie dezaktywowana. Aby ponownie ją opublikować, "
          "zaloguj się do panelu hosta i wznów ofertę.</p>"
    )
    return EmailMessage(
        to=[host_email],
        subject=clean_subject(f"⏰ Twoja oferta \"{cabin_title}\" wygasła"),
        html=_layout("⏰ Twoja oferta wygasła", esc(cabin_title), body, "#d97706"),
    )


def format_new_cabin_to_admin(cabin_title: str, cabin_address: Optional[str],
                              host_email: Optional[str], host_name: Optional[str]) -> EmailMessage:
    body = (
        "<p>Nowy domek czeka na weryfikację.</p>"
        + _details([
            ("Domek", esc(cabin_title)),
            ("Adres", esc(cabin_address or "Nie podano")),
            ("Host", esc(host_name or "Nie podano")),
            ("Email hosta", esc(host_email or "Nie podano")),
        ])
    )
    return EmailMessage(
        to=[config.ADMIN_EMAIL],
        subject=clean_subject(f"Nowy domek do weryfikacji: {cabin_title}"),
        html=_layout("🏡 Nowy domek do weryfikacji", esc(cabin_title), body, "#d97706"),
    )


def format_payment_verified_to_host(host_email: str, host_name: Optional[str], cabin_title: str) -> EmailMessage:
    body = (
        _greeting(host_name)
        + "<p>Twój przelew weryfikacyjny został potwierdzony. Płatności online są teraz włączone.</p>"
        + _details([
            ("Oferta", esc(cabin_title)),
            ("Przelew weryfikacyjny", f"{config.VERIFICATION_TRANSFER_AMOUNT_PLN} zł"),
            ("Prowizja platformy", f"{config.MANUAL_PATH_ADVERTISED_COMMISSION_PERCENT}%"),
        ])
    )
    return EmailMessage(
        to=[host_email],
        subject=clean_subject(f"✅ Płatności online aktywne: {cabin_title}"),
        html=_layout("Przelew weryfikacyjny potwierdzony!", esc(cabin_title), body, "#059669"),
    )


def format_new_user_to_admin(email: str, name: Optional[str], phone: Optional[str], is_host: bool) -> EmailMessage:
    role_label = "Gospodarz" if is_host else "Gość"
    rows = [("Email", esc(email))]
    if name:
        rows.append(("Imię", esc(name)))
    if phone:
        rows.append(("Telefon", esc(phone)))
    rows.append(("Rola", role_label))
    return EmailMessage(
        to=[config.ADMIN_EMAIL],
        subject=clean_subject(f"👤 Nowy {role_label.lower()}: {name or email}"),
        html=_layout("👤 Nowy użytkownik", "Ktoś właśnie się zarejestrował!", _details(rows), "#16a34a"),
    )


def format_contact_message(name: str, email: str, subject: str, message: str) -> EmailMessage:
    body = _details([
        ("Imię", esc(name)),
        ("Email", esc(email)),
        ("Temat", esc(subject)),
    ]) + f'<div class="message-box">{esc(message)}</div>'
    return EmailMessage(
        to=[config.CONTACT_EMAIL],
        subject=clean_subject(f"[Kontakt] {subject}"),
        html=_layout("Nowa wiadomość z formularza", esc(subject), body),
        reply_to=email,
    )
