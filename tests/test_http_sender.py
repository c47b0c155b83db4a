import aiohttp
import pytest
from aioresponses import aioresponses

from mail_queue.exceptions import AdapterConfigurationError, DeliveryError
from mail_queue.senders import HttpApiSender, get_sender

CONFIG = {"api_key": "key-123", "domain": "mg.example.com"}
URL = "https://api.mailgun.net/v3/mg.example.com/messages"


def test_missing_configuration_is_reported():
    with pytest.raises(AdapterConfigurationError) as exc_info:
        HttpApiSender({"domain": "mg.example.com"})
    assert exc_info.value.missing == ["api_key"]


def test_url_and_factory():
    sender = get_sender({"type": "http", **CONFIG, "base_url": "https://api.eu.mailgun.net/v3/"})
    assert isinstance(sender, HttpApiSender)
    assert sender.url == "https://api.eu.mailgun.net/v3/mg.example.com/messages"


def test_form_fields(tmp_path, make_message):
    logo = tmp_path / "logo.png"
    logo.write_bytes(b"\x89PNG")
    message = make_message(
        cc=[{"address": "bob@example.com"}],
        bcc=[{"address": "audit@example.com"}],
        reply_to={"address": "support@example.com", "name": "Support"},
        headers={"X-Campaign": "spring"},
        attachments=[{"file_path": str(logo)}],
    )

    fields = HttpApiSender(CONFIG).form_fields(message)
    by_name = {}
    for name, value, options in fields:
        by_name.setdefault(name, []).append((value, options))

    assert by_name["from"] == [("Example <noreply@example.com>", {})]
    assert by_name["to"] == [("Alice <alice@example.com>", {})]
    assert by_name["cc"] == [("bob@example.com", {})]
    assert by_name["bcc"] == [("audit@example.com", {})]
    assert by_name["subject"] == [("Hello", {})]
    assert by_name["html"] == [("<p>Hello Alice</p>", {})]
    assert by_name["text"] == [("Hello Alice", {})]
    assert by_name["h:Reply-To"] == [("Support <support@example.com>", {})]
    assert by_name["h:X-Campaign"] == [("spring", {})]
    assert by_name["attachment"] == [(b"\x89PNG", {"filename": "logo.png", "content_type": "image/png"})]


def test_plain_body_has_no_html_field(make_message):
    fields = HttpApiSender(CONFIG).form_fields(make_message(body="Plain", is_html=False))
    names = [name for name, _, _ in fields]
    assert "html" not in names
    assert ("text", "Plain", {}) in fields


@pytest.mark.asyncio
async def test_send_posts_with_basic_auth(make_message):
    sender = HttpApiSender(CONFIG)
    with aioresponses() as mocked:
        mocked.post(URL, status=200, payload={"id": "<abc@mg.example.com>", "message": "Queued"})
        await sender.send(make_message())

        calls = [call for (method, url), call_list in mocked.requests.items() for call in call_list]
        assert len(calls) == 1
        auth = calls[0].kwargs["auth"]
        assert (auth.login, auth.password) == ("api", "key-123")
    await sender.close()


@pytest.mark.asyncio
async def test_http_error_becomes_delivery_error(make_message):
    sender = HttpApiSender(CONFIG)
    with aioresponses() as mocked:
        mocked.post(URL, status=401, body="Forbidden")
        with pytest.raises(DeliveryError) as exc_info:
            await sender.send(make_message())
    assert exc_info.value.status == 401
    assert "Forbidden" in str(exc_info.value)
    await sender.close()


@pytest.mark.asyncio
async def test_connection_error_becomes_delivery_error(make_message):
    sender = HttpApiSender(CONFIG)
    with aioresponses() as mocked:
        mocked.post(URL, exception=aiohttp.ClientConnectionError("unreachable"))
        with pytest.raises(DeliveryError):
            await sender.send(make_message())
    await sender.close()


@pytest.mark.asyncio
async def test_unbuildable_message_becomes_delivery_error(monkeypatch, make_message):
    sender = HttpApiSender(CONFIG)

    def broken_fields(message):
        raise ValueError("invalid header value")

    monkeypatch.setattr(sender, "form_fields", broken_fields)
    with aioresponses() as mocked:
        with pytest.raises(DeliveryError):
            await sender.send(make_message())
        assert not mocked.requests
    await sender.close()
