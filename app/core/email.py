import logging

import httpx
from app.core.config import settings

logger = logging.getLogger(__name__)

EMAILJS_URL = "https://api.emailjs.com/api/v1.0/email/send"


def _configured(template_id: str) -> bool:
    return all([
        settings.EMAILJS_SERVICE_ID,
        settings.EMAILJS_PUBLIC_KEY,
        settings.EMAILJS_PRIVATE_KEY,
        template_id,
    ])


async def _send(template_id: str, to_email: str, params: dict) -> bool:
    payload = {
        "service_id": settings.EMAILJS_SERVICE_ID,
        "template_id": template_id,
        "user_id": settings.EMAILJS_PUBLIC_KEY,
        "accessToken": settings.EMAILJS_PRIVATE_KEY,
        "template_params": {"to_email": to_email, **params},
    }

    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(EMAILJS_URL, json=payload)
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error(
            "EmailJS rejected mail to %s: %s %s",
            to_email, e.response.status_code, e.response.text,
        )
        return False
    except httpx.HTTPError as e:
        logger.error("Failed to send mail to %s: %s", to_email, e)
        return False

    logger.info("Mail sent to %s (template %s)", to_email, template_id)
    return True


async def send_welcome_email(to_email: str, name: str, login_id: str, password: str, account_type: str) -> bool:
    """
    Sends the new-account email with login credentials.
    account_type is "student" or "teacher".
    """
    if not _configured(settings.EMAILJS_WELCOME_TEMPLATE_ID):
        logger.warning("EmailJS not configured. Skipping welcome email to %s", to_email)
        return False

    label = "Student ID" if account_type == "student" else "Employee ID"
    return await _send(settings.EMAILJS_WELCOME_TEMPLATE_ID, to_email, {
        "to_name": name,
        "org_name": settings.APP_NAME,
        "account_type": account_type,
        "login_label": label,
        "login_id": login_id,
        "password": password,
    })


async def send_reset_code_email(to_email: str, name: str, code: str) -> bool:
    if not _configured(settings.EMAILJS_RESET_TEMPLATE_ID):
        logger.warning("EmailJS not configured. Skipping reset code email to %s", to_email)
        return False

    return await _send(settings.EMAILJS_RESET_TEMPLATE_ID, to_email, {
        "to_name": name,
        "org_name": settings.APP_NAME,
        "code": code,
        "expires_minutes": settings.RESET_TOKEN_TTL_MINUTES,
    })
