"""
Welcome email for newly created security guard accounts.

The account already exists by the time this runs, so nothing here may fail the
caller: missing data, missing mail configuration and delivery errors are all
logged and swallowed.
"""

import html
import logging
from collections.abc import Callable
from typing import Any

from dutyengine.notifier import EmailMessage, SmtpMailer, resolve_mailer

logger = logging.getLogger(__name__)

SUBJECT = "Security Guard Account Created"
NOT_SPECIFIED = "Not specified"

_ROW_STYLE = "padding:6px 12px; border:1px solid #d0d7de;"


def _display_name(data: dict[str, Any]) -> str:
    first = data.get("first_name") or ""
    last = data.get("last_name") or ""
    full = f"{first} {last}".strip()
    return str(data.get("name") or full or "Security Guard").strip()


def account_details(
    account_id: str, data: dict[str, Any]
) -> list[tuple[str, str]]:
    password = data.get("initial_password") or "Provided separately"
    return [
        ("Name", _display_name(data)),
        ("Email", str(data.get("email") or "")),
        ("Temporary Password", str(password)),
        ("Guard ID", str(data.get("guard_id") or account_id)),
        ("Position", str(data.get("position") or "Security Guard")),
        ("Contact Number", str(data.get("contact") or NOT_SPECIFIED)),
        ("Address", str(data.get("address") or NOT_SPECIFIED)),
        ("Sex", str(data.get("sex") or NOT_SPECIFIED)),
        ("Account Status", str(data.get("account_status") or "Active")),
        ("Current Duty Status", str(data.get("status") or "Off Duty")),
    ]


def compose_guard_account_email(
    account_id: str, data: dict[str, Any], *, sender: str
) -> EmailMessage:
    name = _display_name(data)
    details = account_details(account_id, data)
    intro = (
        "Your security guard account has been created. Please review the "
        "information below and keep it for your records."
    )
    advice = (
        "For security purposes, change your password after your first login "
        "and do not share these credentials."
    )

    text = "\n".join(
        [
            f"Dear {name},",
            "",
            intro,
            "",
            *(f"{label}: {value}" for label, value in details),
            "",
            advice,
            "",
            "Regards,",
            "Security Command Center",
        ]
    )

    rows = "\n".join(
        f'<tr><td style="{_ROW_STYLE} font-weight:600;">{label}</td>'
        f'<td style="{_ROW_STYLE}">{html.escape(value)}</td></tr>'
        for label, value in details
    )
    body_html = f"""
<div style="font-family: Arial, sans-serif; color:#1a1a1a;
            background:#f7f9fc; padding:24px;">
  <p>Dear {html.escape(name)},</p>
  <p>{intro}</p>
  <table style="border-collapse:collapse; width:100%; max-width:520px;">
    <tbody>
{rows}
    </tbody>
  </table>
  <p style="margin-top:18px;">{advice}</p>
  <p style="margin-top:24px;">Regards,<br/>Security Command Center</p>
</div>
"""

    return EmailMessage(
        from_=sender,
        to=str(data["email"]),
        subject=SUBJECT,
        text=text,
        html=body_html,
    )


async def notify_account_created(
    account_id: str,
    data: dict[str, Any] | None,
    *,
    mailer_resolver: Callable[[], SmtpMailer | None] = resolve_mailer,
) -> bool:
    """Send the welcome email. True only if the email was handed off."""
    if not data:
        logger.warning(
            "Account created event carried no data",
            extra={"account_id": account_id},
        )
        return False

    if str(data.get("role") or "").lower() != "security":
        return False

    if not data.get("email"):
        logger.warning(
            "Security guard account created without email; "
            "cannot send notification",
            extra={"account_id": account_id},
        )
        return False

    mailer = mailer_resolver()
    if mailer is None:
        logger.error(
            "Mail transporter not configured. Skipping guard account email.",
            extra={"account_id": account_id},
        )
        return False

    message = compose_guard_account_email(
        account_id, data, sender=mailer.sender
    )
    try:
        await mailer.send(message)
    except Exception as exc:
        logger.error(
            "Failed to send security guard account email",
            extra={
                "account_id": account_id,
                "email": message.to,
                "error": str(exc),
            },
        )
        return False

    logger.info(
        "Sent security guard account email",
        extra={"account_id": account_id, "email": message.to},
    )
    return True
