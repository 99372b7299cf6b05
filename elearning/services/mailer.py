import logging
import httpx
from elearning.config import settings

logger = logging.getLogger(__name__)

async def send_mail(email: str, subject: str, template: str, data: dict) -> bool:
    """
    Hands an email off to the mail webhook (template rendering and SMTP live there).
    Returns False when the relay rejects or cannot be reached; callers decide how to fail.
    """
    webhook_url = settings.MAIL_WEBHOOK_URL
    if not webhook_url:
        logger.info(f"Mail (Local Only): '{subject}' to {email} using template {template}")
        return True

    payload = {
        "to": email,
        "subject": subject,
        "template": template,
        "data": data,
    }
    headers = {"x-api-key": settings.MAIL_API_KEY} if settings.MAIL_API_KEY else {}

    async with httpx.AsyncClient(timeout=10) as client:
        try:
            response = await client.post(webhook_url, json=payload, headers=headers)
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Failed to send '{subject}' to {email}: {e}")
            return False

async def send_otp_mail(email: str, name: str, otp: int) -> bool:
    return await send_mail(email, "E learning", "otp", {"name": name, "otp": otp})

async def send_reset_mail(email: str, token: str) -> bool:
    reset_link = f"{settings.FRONTEND_URL}/reset-password/{token}"
    return await send_mail(email, "E learning", "reset-password", {"email": email, "link": reset_link})
