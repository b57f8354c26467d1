import asyncio
import logging
import os
import smtplib
from email.message import EmailMessage as MimeMessage

from pydantic import BaseModel, ConfigDict, Field

from dutyengine.config import parse_bool, parse_port

logger = logging.getLogger(__name__)

DEFAULT_SENDER = "no-reply@example.com"
DEFAULT_SERVICE = "gmail"

# host, port, implicit TLS
WELL_KNOWN_SERVICES: dict[str, tuple[str, int, bool]] = {
    "gmail": ("smtp.gmail.com", 465, True),
    "outlook": ("smtp-mail.outlook.com", 587, False),
    "hotmail": ("smtp-mail.outlook.com", 587, False),
    "office365": ("smtp.office365.com", 587, False),
    "yahoo": ("smtp.mail.yahoo.com", 465, True),
}


class EmailMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    to: str
    subject: str
    text: str
    html: str


class MailSettings(BaseModel):
    user: str = ""
    password: str = ""
    sender: str = ""
    service: str = ""
    host: str = ""
    port: int | None = None
    secure: bool | None = None

    @classmethod
    def from_env(cls) -> "MailSettings":
        return cls(
            user=os.getenv("MAIL_USER", "").strip(),
            password=os.getenv("MAIL_PASS", "").strip(),
            sender=os.getenv("MAIL_FROM", "").strip(),
            service=os.getenv("MAIL_SERVICE", "").strip(),
            host=os.getenv("MAIL_HOST", "").strip(),
            port=parse_port(os.getenv("MAIL_PORT")),
            secure=parse_bool(os.getenv("MAIL_SECURE")),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.user and self.password)


class SmtpMailer:
    def __init__(self, settings: MailSettings) -> None:
        service = (settings.service or DEFAULT_SERVICE).lower()
        known_host, known_port, known_secure = WELL_KNOWN_SERVICES.get(
            service, ("", 587, False)
        )
        self.host = settings.host or known_host
        self.secure = (
            settings.secure if settings.secure is not None else known_secure
        )
        if settings.host:
            known_port = 465 if self.secure else 587
        self.port = settings.port or known_port
        self.user = settings.user
        self.password = settings.password
        self.sender = settings.sender or settings.user or DEFAULT_SENDER

    def _deliver(self, message: EmailMessage) -> None:
        mime = MimeMessage()
        mime["From"] = message.from_
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime.set_content(message.text)
        mime.add_alternative(message.html, subtype="html")

        smtp_cls = smtplib.SMTP_SSL if self.secure else smtplib.SMTP
        with smtp_cls(self.host, self.port, timeout=30) as smtp:
            if not self.secure:
                smtp.starttls()
            smtp.login(self.user, self.password)
            smtp.send_message(mime)

    async def send(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._deliver, message)


_cached_mailer: SmtpMailer | None = None


def resolve_mailer(settings: MailSettings | None = None) -> SmtpMailer | None:
    """
    Return the configured mailer, or None when MAIL_USER/MAIL_PASS are unset.

    A working mailer is cached; a missing configuration is re-read (and warned
    about) on every resolution so credentials added later are picked up.
    """
    global _cached_mailer
    if _cached_mailer is not None:
        return _cached_mailer

    settings = settings or MailSettings.from_env()
    if not settings.enabled:
        logger.warning(
            "Mail configuration not found. Guard creation emails will be "
            "skipped until MAIL_USER and MAIL_PASS are set."
        )
        return None

    _cached_mailer = SmtpMailer(settings)
    return _cached_mailer


def reset_mailer_cache() -> None:
    global _cached_mailer
    _cached_mailer = None
