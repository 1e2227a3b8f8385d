"""
HTTP reminder channel tests using httpx.MockTransport.
"""

import json
from types import SimpleNamespace

import httpx
import pytest

from stockmaker.services.notification_channels import (
    EmailChannel,
    SmsChannel,
    WhatsAppChannel,
    build_channels,
    normalize_phone,
)


MERCHANT = SimpleNamespace(name="Sharma Mobiles", contact="098765 43210", email="sharma@example.com")


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestNormalizePhone:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("9876543210", "+919876543210"),
            ("098765 43210", "+919876543210"),
            ("+91 98765-43210", "+919876543210"),
            ("919876543210", "+919876543210"),
            ("0044 20 7946 0958", "+442079460958"),
            ("", None),
            (None, None),
            ("n/a", None),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_phone(raw) == expected


class TestEmailChannel:

    def test_posts_to_resend(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "email_123"})

        channel = EmailChannel(_client(handler), api_key="re_test", sender="Shop <shop@example.com>")
        assert channel.send("sharma@example.com", "Due", "text", "<p>html</p>") is True

        assert seen["url"] == "https://api.resend.com/emails"
        assert seen["auth"] == "Bearer re_test"
        assert seen["body"] == {
            "from": "Shop <shop@example.com>",
            "to": ["sharma@example.com"],
            "subject": "Due",
            "html": "<p>html</p>",
        }

    def test_rejected_by_provider(self):
        channel = EmailChannel(
            _client(lambda request: httpx.Response(422, json={"message": "invalid from"})),
            api_key="re_test", sender="bad",
        )
        assert channel.send("sharma@example.com", "Due", "text", "html") is False

    def test_transport_error_is_false(self):
        def handler(request):
            raise httpx.ConnectError("no route to host")

        channel = EmailChannel(_client(handler), api_key="re_test", sender="shop@example.com")
        assert channel.send("sharma@example.com", "Due", "text", "html") is False

    def test_recipient(self):
        channel = EmailChannel(_client(lambda r: httpx.Response(200)), api_key="k", sender="s")
        assert channel.recipient_for(MERCHANT) == "sharma@example.com"
        assert channel.recipient_for(SimpleNamespace(email=None)) is None


class TestWhatsAppChannel:

    def test_posts_to_ultramsg(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"sent": "true", "id": 7})

        channel = WhatsAppChannel(_client(handler), instance_id="instance42", token="tok", country_code="91")
        recipient = channel.recipient_for(MERCHANT)
        assert recipient == "+919876543210"
        assert channel.send(recipient, "ignored", "Please pay", "<p>ignored</p>") is True

        assert seen["url"] == "https://api.ultramsg.com/instance42/messages/chat"
        assert seen["body"] == {"token": "tok", "to": "+919876543210", "body": "Please pay"}

    def test_error_in_body(self):
        channel = WhatsAppChannel(
            _client(lambda request: httpx.Response(200, json={"error": "Wrong token"})),
            instance_id="i", token="t", country_code="91",
        )
        assert channel.send("+919876543210", "s", "t", "h") is False

    def test_body_that_is_not_an_object(self):
        channel = WhatsAppChannel(
            _client(lambda request: httpx.Response(200, json=["queued"])),
            instance_id="i", token="t", country_code="91",
        )
        assert channel.send("+919876543210", "s", "t", "h") is False

    def test_non_json_body(self):
        channel = WhatsAppChannel(
            _client(lambda request: httpx.Response(200, text="<html>gateway</html>")),
            instance_id="i", token="t", country_code="91",
        )
        assert channel.send("+919876543210", "s", "t", "h") is False


class TestSmsChannel:

    def test_posts_to_twilio_with_basic_auth(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["form"] = dict(httpx.QueryParams(request.content.decode()))
            return httpx.Response(201, json={"sid": "SM1"})

        channel = SmsChannel(
            _client(handler), account_sid="AC123", auth_token="secret",
            from_number="+15005550006", country_code="91",
        )
        assert channel.send("+919876543210", "s", "Please pay", "h") is True

        assert seen["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
        assert seen["auth"].startswith("Basic ")
        assert seen["form"] == {"To": "+919876543210", "From": "+15005550006", "Body": "Please pay"}

    def test_rejected(self):
        channel = SmsChannel(
            _client(lambda request: httpx.Response(400, json={"message": "bad number"})),
            account_sid="AC123", auth_token="secret", from_number="+15005550006", country_code="91",
        )
        assert channel.send("+91", "s", "t", "h") is False


class TestSendIsolation:

    def test_unexpected_error_is_false(self):
        class Broken(EmailChannel):
            def _deliver(self, recipient, subject, text, html):
                raise KeyError("id")

        channel = Broken(_client(lambda r: httpx.Response(200)), api_key="k", sender="s")
        assert channel.send("sharma@example.com", "Due", "text", "html") is False


class TestBuildChannels:

    def test_only_configured_channels(self):
        client = _client(lambda r: httpx.Response(200))
        config = {
            "RESEND_API_KEY": "re_test",
            "REMINDER_EMAIL_FROM": "shop@example.com",
            "ULTRAMSG_INSTANCE_ID": None,
            "ULTRAMSG_TOKEN": None,
            "TWILIO_ACCOUNT_SID": "AC1",
            "TWILIO_AUTH_TOKEN": "tok",
            "TWILIO_PHONE_NUMBER": "+15005550006",
        }
        assert [c.name for c in build_channels(config, client)] == ["email", "sms"]

    def test_nothing_configured(self):
        assert build_channels({}, _client(lambda r: httpx.Response(200))) == []
