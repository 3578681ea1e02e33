"""Email sending via SMTP.

Notifications are fire-and-forget from the caller's point of view: a mail
server outage is logged and never fails the request that triggered it.
"""

import logging
from email.message import EmailMessage

import aiosmtplib

from app.core.config import settings
from app.models.facility import Facility
from app.models.user import User

logger = logging.getLogger(__name__)


async def send_email(to: str, subject: str, body: str) -> None:
    """Send a plain-text email via SMTP."""
    message = EmailMessage()
    message["From"] = settings.smtp_from
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    await aiosmtplib.send(message, hostname=settings.smtp_host, port=settings.smtp_port)


async def _notify(to: str, subject: str, body: str) -> None:
    try:
        await send_email(to, subject, body)
    except (aiosmtplib.SMTPException, OSError):
        logger.exception("Could not send %r to %s", subject, to)
        return
    logger.info("Sent %r to %s", subject, to)


async def send_facility_submitted_email(admin_emails: list[str], facility: Facility) -> None:
    """Tell the admins a facility (new or edited) is waiting in the moderation queue."""
    body = (
        f"Hi,\n\n"
        f"A facility has been submitted for review:\n\n"
        f"  {facility.name}\n"
        f"  {facility.address}, {facility.city}\n\n"
        f"Review it in the admin dashboard:\n"
        f"{settings.frontend_url}/admin/facilities/{facility.id}\n\n"
        f"{settings.app_name}"
    )
    for to in admin_emails:
        await _notify(to, f"Facility awaiting approval: {facility.name}", body)


async def send_facility_decision_email(owner: User, facility: Facility) -> None:
    """Tell the owner their facility was approved or rejected (with the reason)."""
    if facility.rejection_reason:
        subject = f"{facility.name} was not approved"
        outcome = f"was not approved.\n\nReason: {facility.rejection_reason}"
    else:
        subject = f"{facility.name} has been approved"
        outcome = "has been approved. You can now list it for players to book."

    body = f"Hi {owner.first_name},\n\nYour facility {facility.name} {outcome}\n\n{settings.app_name}"
    await _notify(owner.email, subject, body)
