from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Any
import httpx

from app.core.config import settings


class EmailDeliveryError(Exception):
    pass


logger = logging.getLogger("app.email")

_MOCK_PROVIDERS = {"", "dummy", "mock", "console"}


def _normalize_email(value: str | None) -> str:
    return str(value or "").strip().lower()


def _first_name(name: str | None) -> str:
    parts = str(name or "").split()
    return parts[0] if parts else "there"


def welcome_message(*, name: str, url: str) -> tuple[str, str]:
    subject = settings.WELCOME_EMAIL_SUBJECT
    body = (
        f"Hi {_first_name(name)},\n\n"
        "Welcome aboard, we're glad to have you.\n"
        f"Upload a profile photo and start exploring tours: {url}\n"
    )
    return subject, body


def password_reset_message(*, name: str, url: str) -> tuple[str, str]:
    minutes = int(settings.PASSWORD_RESET_TTL_MINUTES)
    try:
        subject = settings.PASSWORD_RESET_EMAIL_SUBJECT.format(minutes=minutes)
    except (KeyError, IndexError, ValueError):
        subject = f"Your password reset token (valid for {minutes} minutes)"
    body = (
        f"Hi {_first_name(name)},\n\n"
        f"Forgot your password? Submit a PATCH request with your new password and password_confirm to: {url}\n"
        "If you didn't forget your password, please ignore this email.\n"
    )
    return subject, body


def _mock_send(*, email: str, subject: str, body: str) -> dict[str, Any]:
    logger.warning("[EMAIL MOCK] to=%s subject=%s\n%s", email, subject, body)
    return {
        "provider": "mock_email",
        "status": "accepted",
        "sent": False,
        "mocked": True,
        "subject": subject,
        "body": body,
    }


def _send_smtp(*, email: str, subject: str, body: str) -> dict[str, Any]:
    host = str(settings.SMTP_HOST or "").strip()
    port = int(settings.SMTP_PORT or 0)
    username = str(settings.SMTP_USER or "").strip()
    password = str(settings.SMTP_PASSWORD or "").strip()
    sender = str(settings.EMAIL_FROM or "").strip()
    use_tls = bool(settings.SMTP_USE_TLS)
    use_ssl = bool(settings.SMTP_USE_SSL)

    if not host or not port or not sender:
        raise EmailDeliveryError("SMTP_HOST, SMTP_PORT and EMAIL_FROM must be set")
    if use_tls and use_ssl:
        raise EmailDeliveryError("SMTP_USE_TLS and SMTP_USE_SSL cannot both be enabled")

    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        if use_ssl:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=15)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=15)
        with smtp as client:
            client.ehlo()
            if use_tls:
                client.starttls()
                client.ehlo()
            if username:
                client.login(username, password)
            client.send_message(msg)
    except (OSError, smtplib.SMTPException) as exc:
        raise EmailDeliveryError(f"SMTP delivery failed: {exc}") from exc

    return {"provider": "smtp", "status": "accepted", "sent": True}


def _send_via_email_service(*, email: str, subject: str, body: str) -> dict[str, Any]:
    base_url = str(settings.EMAIL_SERVICE_URL or "").strip().rstrip("/")
    token = str(settings.INTERNAL_SERVICE_TOKEN or "").strip()
    if not base_url:
        raise EmailDeliveryError("EMAIL_SERVICE_URL is not set")
    if not token:
        raise EmailDeliveryError("INTERNAL_SERVICE_TOKEN is not set")
    try:
        with httpx.Client(timeout=15.0) as client:
            response = client.post(
                f"{base_url}/internal/send-email",
                headers={"X-Internal-Token": token, "Content-Type": "application/json"},
                json={"email": email, "subject": subject, "body": body},
            )
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f"email-service request failed: {exc}") from exc
    payload: dict[str, Any] = {}
    try:
        payload = response.json() if response.content else {}
    except ValueError:
        payload = {}
    if response.status_code >= 400:
        detail = str(payload.get("detail") or payload.get("error") or response.text or response.status_code)
        raise EmailDeliveryError(f"email-service error: {detail}")
    return {"provider": "email-service", "status": "accepted", "sent": True, "response": payload}


def send_email(*, email: str, subject: str, body: str) -> dict[str, Any]:
    normalized_email = _normalize_email(email)
    if not normalized_email:
        raise EmailDeliveryError("Invalid email address")

    provider = str(settings.EMAIL_PROVIDER or "dummy").strip().lower()
    if provider in _MOCK_PROVIDERS:
        return _mock_send(email=normalized_email, subject=subject, body=body)
    if provider in {"service", "email_service"}:
        return _send_via_email_service(email=normalized_email, subject=subject, body=body)
    if provider == "smtp":
        return _send_smtp(email=normalized_email, subject=subject, body=body)
    raise EmailDeliveryError(f"Unknown EMAIL_PROVIDER: {provider}")


def send_welcome(*, email: str, name: str, url: str) -> dict[str, Any]:
    subject, body = welcome_message(name=name, url=url)
    return send_email(email=email, subject=subject, body=body)


def send_password_reset(*, email: str, name: str, url: str) -> dict[str, Any]:
    subject, body = password_reset_message(name=name, url=url)
    return send_email(email=email, subject=subject, body=body)
