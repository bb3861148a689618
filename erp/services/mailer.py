from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from erp.core import config

logger = logging.getLogger(__name__)


def _smtp_configured() -> bool:
    return bool(config.SMTP_HOST and config.SMTP_USER and config.SMTP_PASSWORD)


def send_email(to: str, subject: str, body: str) -> bool:
    """Envía un email de texto. Nunca levanta: devuelve False si no se envió."""
    if not _smtp_configured():
        logger.warning("smtp not configured; email to=%s subject=%s not sent", to, subject)
        return False

    message = EmailMessage()
    message["From"] = config.SMTP_FROM
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=15) as smtp:
            smtp.starttls()
            smtp.login(config.SMTP_USER, config.SMTP_PASSWORD)
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("email delivery failed to=%s subject=%s error=%s", to, subject, exc)
        return False

    logger.info("email sent to=%s subject=%s", to, subject)
    return True


def send_verification_email(to: str, name: str, code: str) -> bool:
    if not _smtp_configured():
        logger.info("verification code for %s: %s", to, code)
    body = (
        f"Hola {name},\n\n"
        f"Tu código de verificación es: {code}\n"
        f"Caduca en {config.VERIFICATION_CODE_TTL_MINUTES} minutos.\n"
    )
    return send_email(to, "Verifica tu email", body)


def send_recovery_email(to: str, name: str, code: str) -> bool:
    if not _smtp_configured():
        logger.info("password recovery code for %s: %s", to, code)
    body = (
        f"Hola {name},\n\n"
        f"Usa este código para restablecer tu contraseña: {code}\n"
        f"Caduca en {config.RESET_CODE_TTL_MINUTES} minutos.\n"
        "Si no lo solicitaste, ignora este mensaje.\n"
    )
    return send_email(to, "Código de recuperación de contraseña", body)
