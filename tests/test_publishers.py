"""
Publisher tests against mocked platform APIs
"""

import hashlib
import hmac
import json
from urllib.parse import parse_qs

import httpx
import pytest

from socialize.services.publishers.base import PublishError, TransientPublishError, UploadSnapshot
from socialize.services.publishers.facebook import FacebookPublisher
from socialize.services.publishers.registry import UnknownPlatformError, get_publisher, registered_platform_types
from socialize.services.publishers.webhook import WebhookPublisher
from socialize.services.publishers.x import XPublisher


def snapshot(**overrides):
    values = dict(
        id="upload-1",
        file_name="photo.jpg",
        file_type="image/jpeg",
        file_size=11,
        metadata={"caption": "Hello world"},
        media_url="https://files.example.com/signed",
    )
    values.update(overrides)
    return UploadSnapshot(**values)


def recording_transport(status_code=200, body=None):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json=body if body is not None else {})

    return httpx.MockTransport(handler), requests


def test_builtin_publishers_are_registered():
    assert {"facebook", "webhook", "x"} <= set(registered_platform_types())
    assert isinstance(get_publisher("x"), XPublisher)
    with pytest.raises(UnknownPlatformError):
        get_publisher("myspace")


def test_caption_falls_back_to_text():
    assert snapshot(metadata={"text": "From text"}).caption == "From text"
    assert snapshot(metadata={}).caption == ""


async def test_webhook_signs_body_and_sends_idempotency_key():
    transport, requests = recording_transport(body={"id": "hook-42"})
    publisher = WebhookPublisher(transport=transport)

    result = await publisher.publish(
        snapshot(), {"webhook_url": "https://hooks.example.com/in", "secret": "s3cret"}, "upload-1:0"
    )

    assert result.external_post_id == "hook-42"
    request = requests[0]
    assert request.headers["Idempotency-Key"] == "upload-1:0"
    expected = hmac.new(b"s3cret", request.content, hashlib.sha256).hexdigest()
    assert request.headers["X-Socialize-Signature"] == f"sha256={expected}"
    payload = json.loads(request.content)
    assert payload["upload_id"] == "upload-1"
    assert payload["media_url"] == "https://files.example.com/signed"


async def test_webhook_without_id_uses_idempotency_key():
    transport, requests = recording_transport(body={"received": True})
    result = await WebhookPublisher(transport=transport).publish(
        snapshot(), {"webhook_url": "https://hooks.example.com/in"}, "upload-1:3"
    )
    assert result.external_post_id == "upload-1:3"
    assert "X-Socialize-Signature" not in requests[0].headers


async def test_webhook_requires_url():
    with pytest.raises(PublishError, match="webhook_url"):
        await WebhookPublisher().publish(snapshot(), {}, "upload-1:0")


async def test_x_posts_caption():
    transport, requests = recording_transport(201, {"data": {"id": "1790000000000000000", "text": "Hello world"}})
    result = await XPublisher(transport=transport).publish(snapshot(), {"access_token": "tok"}, "upload-1:0")

    assert result.external_post_id == "1790000000000000000"
    request = requests[0]
    assert str(request.url) == "https://api.twitter.com/2/tweets"
    assert request.headers["Authorization"] == "Bearer tok"
    assert json.loads(request.content) == {"text": "Hello world"}


@pytest.mark.parametrize("metadata", [{}, {"caption": "x" * 281}])
async def test_x_rejects_bad_captions(metadata):
    transport, requests = recording_transport()
    with pytest.raises(PublishError):
        await XPublisher(transport=transport).publish(snapshot(metadata=metadata), {"access_token": "t"}, "k")
    assert requests == []


async def test_facebook_image_goes_to_photos():
    transport, requests = recording_transport(body={"id": "photo-1", "post_id": "page_post-1"})
    result = await FacebookPublisher(transport=transport).publish(
        snapshot(), {"page_id": "123", "page_access_token": "page-token"}, "upload-1:0"
    )

    assert result.external_post_id == "page_post-1"
    request = requests[0]
    assert request.url.path == "/v19.0/123/photos"
    form = parse_qs(request.content.decode())
    assert form["url"] == ["https://files.example.com/signed"]
    assert form["caption"] == ["Hello world"]


async def test_facebook_other_files_become_feed_posts():
    transport, requests = recording_transport(body={"id": "123_456"})
    result = await FacebookPublisher(transport=transport).publish(
        snapshot(file_type="video/mp4"), {"page_id": "123", "page_access_token": "page-token"}, "upload-1:0"
    )

    assert result.external_post_id == "123_456"
    assert requests[0].url.path == "/v19.0/123/feed"
    assert parse_qs(requests[0].content.decode())["message"] == ["Hello world"]


async def test_facebook_requires_credentials():
    with pytest.raises(PublishError, match="page_access_token"):
        await FacebookPublisher().publish(snapshot(), {"page_id": "123"}, "k")


@pytest.mark.parametrize("status_code", [429, 500, 503])
async def test_throttling_and_server_errors_are_transient(status_code):
    transport, _ = recording_transport(status_code)
    with pytest.raises(TransientPublishError):
        await XPublisher(transport=transport).publish(snapshot(), {"access_token": "t"}, "k")


@pytest.mark.parametrize("status_code", [400, 401, 403])
async def test_client_errors_are_permanent(status_code):
    transport, _ = recording_transport(status_code, {"error": "bad"})
    with pytest.raises(PublishError) as exc_info:
        await XPublisher(transport=transport).publish(snapshot(), {"access_token": "t"}, "k")
    assert not isinstance(exc_info.value, TransientPublishError)


async def test_connection_errors_are_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    publisher = WebhookPublisher(transport=httpx.MockTransport(handler))
    with pytest.raises(TransientPublishError):
        await publisher.publish(snapshot(), {"webhook_url": "https://hooks.example.com/in"}, "k")
