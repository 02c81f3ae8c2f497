import pytest

from bakeriq_api.core.settings import Settings
from bakeriq_api.services.notifications import (
    DisabledEmailBackend,
    InMemoryEmailBackend,
    SESEmailBackend,
    SMTPEmailBackend,
    build_email_backend,
)


class FakeSESClient:
    def __init__(self) -> None:
        self.requests: list[dict] = []

    def send_email(self, **request):
        self.requests.append(request)
        return {"MessageId": "fake-message"}


@pytest.mark.asyncio
async def test_ses_backend_tags_idempotency_key() -> None:
    client = FakeSESClient()
    backend = SESEmailBackend(region="us-east-1", sender="BakerIQ <hello@bakeriq.app>", client=client)

    accepted = await backend.send_email(
        "baker@example.com",
        "Welcome",
        "Plain body",
        body_html="<p>Html body</p>",
        idempotency_key="onboarding:1234:day0_welcome",
    )

    assert accepted is True
    request = client.requests[0]
    assert request["Source"] == "BakerIQ <hello@bakeriq.app>"
    assert request["Destination"] == {"ToAddresses": ["baker@example.com"]}
    assert request["Message"]["Body"]["Text"]["Data"] == "Plain body"
    assert request["Tags"] == [{"Name": "idempotency_key", "Value": "onboarding_1234_day0_welcome"}]


@pytest.mark.asyncio
async def test_ses_backend_omits_empty_text_part() -> None:
    client = FakeSESClient()
    backend = SESEmailBackend(region="us-east-1", sender="hello@bakeriq.app", client=client)

    await backend.send_email("baker@example.com", "Hi", None, body_html="<p>Hi</p>")

    assert "Text" not in client.requests[0]["Message"]["Body"]
    assert "Tags" not in client.requests[0]


@pytest.mark.asyncio
async def test_disabled_backend_reports_not_accepted() -> None:
    assert await DisabledEmailBackend().send_email("a@example.com", "s", "t", body_html="<p>t</p>") is False


@pytest.mark.asyncio
async def test_in_memory_backend_builds_multipart_message() -> None:
    backend = InMemoryEmailBackend()

    await backend.send_email("a@example.com", "Subject", "Text", body_html="<p>Html</p>", idempotency_key="key-1")

    message = backend.sent_messages[0]
    assert message["X-Idempotency-Key"] == "key-1"
    assert message.get_body(("plain",)).get_content().strip() == "Text"
    assert "<p>Html</p>" in message.get_body(("html",)).get_content()


@pytest.mark.parametrize(
    ("overrides", "expected"),
    [
        ({"email_backend": "disabled"}, DisabledEmailBackend),
        ({"email_backend": "smtp"}, DisabledEmailBackend),
        ({"email_backend": "smtp", "smtp_host": "smtp.example.com"}, SMTPEmailBackend),
    ],
)
def test_build_email_backend_falls_back_when_unconfigured(overrides, expected) -> None:
    base = Settings(aws_access_key_id=None, aws_secret_access_key=None, smtp_host=None)
    settings = base.model_copy(update=overrides)

    assert isinstance(build_email_backend(settings), expected)


@pytest.mark.parametrize(
    ("keys", "expected_keys"),
    [
        ({}, (None, None)),
        ({"aws_access_key_id": "AKIAEXAMPLE"}, (None, None)),
        ({"aws_access_key_id": "AKIAEXAMPLE", "aws_secret_access_key": "secret"}, ("AKIAEXAMPLE", "secret")),
    ],
)
def test_build_email_backend_ses_defers_missing_keys_to_boto3(monkeypatch, keys, expected_keys) -> None:
    calls: list[dict] = []

    def fake_client(service_name, **kwargs):
        calls.append({"service_name": service_name, **kwargs})
        return FakeSESClient()

    monkeypatch.setattr("bakeriq_api.services.notifications.backend.boto3.client", fake_client)
    base = Settings(aws_access_key_id=None, aws_secret_access_key=None, aws_ses_region="eu-west-1")
    settings = base.model_copy(update={"email_backend": "ses", **keys})

    backend = build_email_backend(settings)

    assert isinstance(backend, SESEmailBackend)
    assert calls == [
        {
            "service_name": "ses",
            "region_name": "eu-west-1",
            "aws_access_key_id": expected_keys[0],
            "aws_secret_access_key": expected_keys[1],
        }
    ]
