# Overview: Outbound reminder channels (email, WhatsApp, SMS) over HTTP.

"""
Each channel wraps one provider API and reports delivery as a bool.
Transport and provider errors are logged and turned into False here, so a
failing provider can never abort the reminder batch or block the other
channels.
"""

from __future__ import annotations

import logging
import re

import httpx

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
ULTRAMSG_URL = "https://api.ultramsg.com/{instance}/messages/chat"
TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

_NON_DIGIT = re.compile(r"\D")


def normalize_phone(number: str | None, country_code: str = "91") -> str | None:
    """
    E.164 form of a shop-entered phone number. Numbers without a leading
    "+" get the default country code; a trunk "0" is dropped.
    """
    if not number:
        return None
    raw = number.strip()
    digits = _NON_DIGIT.sub("", raw)
    if not digits:
        return None
    if raw.startswith("+"):
        return f"+{digits}"
    if digits.startswith("00"):
        return f"+{digits[2:]}"
    digits = digits.lstrip("0")
    if digits.startswith(country_code) and len(digits) > 10:
        return f"+{digits}"
    return f"+{country_code}{digits}"


class NotificationChannel:
    name = "base"

    def __init__(self, client: httpx.Client):
        self.client = client

    def is_configured(self) -> bool:
        raise NotImplementedError

    def recipient_for(self, merchant) -> str | None:
        raise NotImplementedError

    def _deliver(self, recipient: str, subject: str, text: str, html: str) -> bool:
        raise NotImplementedError

    def send(self, recipient: str, subject: str, text: str, html: str) -> bool:
        try:
            return self._deliver(recipient, subject, text, html)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("%s delivery to %s failed: %s", self.name, recipient, exc)
            return False
        except Exception:
            logger.exception("%s delivery to %s raised", self.name, recipient)
            return False


class EmailChannel(NotificationChannel):
    """Resend transactional email."""
    name = "email"

    def __init__(self, client: httpx.Client, *, api_key: str | None, sender: str):
        super().__init__(client)
        self.api_key = api_key
        self.sender = sender

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def recipient_for(self, merchant) -> str | None:
        return merchant.email or None

    def _deliver(self, recipient, subject, text, html) -> bool:
        response = self.client.post(
            RESEND_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"from": self.sender, "to": [recipient], "subject": subject, "html": html},
        )
        if response.is_success:
            return True
        logger.warning("Resend rejected email to %s: %s %s", recipient, response.status_code, response.text[:200])
        return False


class WhatsAppChannel(NotificationChannel):
    """UltraMsg WhatsApp gateway."""
    name = "whatsapp"

    def __init__(self, client: httpx.Client, *, instance_id: str | None, token: str | None, country_code: str):
        super().__init__(client)
        self.instance_id = instance_id
        self.token = token
        self.country_code = country_code

    def is_configured(self) -> bool:
        return bool(self.instance_id and self.token)

    def recipient_for(self, merchant) -> str | None:
        return normalize_phone(merchant.contact, self.country_code)

    def _deliver(self, recipient, subject, text, html) -> bool:
        response = self.client.post(
            ULTRAMSG_URL.format(instance=self.instance_id),
            json={"token": self.token, "to": recipient, "body": text},
        )
        if not response.is_success:
            logger.warning("UltraMsg HTTP %s for %s", response.status_code, recipient)
            return False
        body = response.json()
        if not isinstance(body, dict):
            logger.warning("UltraMsg returned unexpected body for %s: %s", recipient, response.text[:200])
            return False
        if body.get("error"):
            logger.warning("UltraMsg error for %s: %s", recipient, body["error"])
            return False
        return True


class SmsChannel(NotificationChannel):
    """Twilio programmable SMS."""
    name = "sms"

    def __init__(
        self,
        client: httpx.Client,
        *,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str | None,
        country_code: str,
    ):
        super().__init__(client)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.country_code = country_code

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def recipient_for(self, merchant) -> str | None:
        return normalize_phone(merchant.contact, self.country_code)

    def _deliver(self, recipient, subject, text, html) -> bool:
        response = self.client.post(
            TWILIO_URL.format(sid=self.account_sid),
            auth=(self.account_sid, self.auth_token),
            data={"To": recipient, "From": self.from_number, "Body": text},
        )
        if response.is_success:
            return True
        logger.warning("Twilio rejected SMS to %s: %s %s", recipient, response.status_code, response.text[:200])
        return False


def build_channels(config, client: httpx.Client | None = None) -> list[NotificationChannel]:
    """All channels that have credentials in `config`, sharing one HTTP client."""
    if client is None:
        client = httpx.Client(timeout=config.get("NOTIFICATION_HTTP_TIMEOUT", 10.0))
    country_code = config.get("DEFAULT_COUNTRY_CODE", "91")

    channels: list[NotificationChannel] = [
        EmailChannel(client, api_key=config.get("RESEND_API_KEY"), sender=config.get("REMINDER_EMAIL_FROM")),
        WhatsAppChannel(
            client,
            instance_id=config.get("ULTRAMSG_INSTANCE_ID"),
            token=config.get("ULTRAMSG_TOKEN"),
            country_code=country_code,
        ),
        SmsChannel(
            client,
            account_sid=config.get("TWILIO_ACCOUNT_SID"),
            auth_token=config.get("TWILIO_AUTH_TOKEN"),
            from_number=config.get("TWILIO_PHONE_NUMBER"),
            country_code=country_code,
        ),
    ]
    return [c for c in channels if c.is_configured()]
