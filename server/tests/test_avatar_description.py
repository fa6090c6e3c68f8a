from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from avatar_studio.errors import AvatarServiceError, ErrorKind
from avatar_studio.services import avatar_description
from avatar_studio.services.avatar_description import AvatarDescriptionService


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _service(handler, **kwargs) -> AvatarDescriptionService:  # noqa: ANN001, ANN003
    kwargs.setdefault("api_key", "sk-ant-test")
    kwargs.setdefault("base_url", "https://api.anthropic.com")
    return AvatarDescriptionService(transport=httpx.MockTransport(handler), **kwargs)


def test_generate_posts_expected_payload() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": [{"type": "text", "text": "A pixel hero in a forest"}]})

    text = _run(
        _service(handler).generate(
            "I am a calm, creative problem solver who loves nature",
            "Pixel Art style from Minecraft",
        )
    )

    assert text == "A pixel hero in a forest"
    assert seen["url"] == "https://api.anthropic.com/v1/messages"
    headers = seen["headers"]
    assert headers["x-api-key"] == "sk-ant-test"
    assert headers["anthropic-version"] == "2023-06-01"
    body = seen["body"]
    assert body["max_tokens"] == 500
    assert body["temperature"] == 0.7
    assert body["messages"][0]["role"] == "user"
    content = body["messages"][0]["content"]
    assert "Pixel Art style from Minecraft" in content
    assert "loves nature" in content


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (401, ErrorKind.UNAUTHORIZED),
        (402, ErrorKind.PAYMENT_REQUIRED),
        (429, ErrorKind.RATE_LIMITED),
        (500, ErrorKind.UPSTREAM_UNAVAILABLE),
        (503, ErrorKind.UPSTREAM_UNAVAILABLE),
        (404, ErrorKind.INTERNAL),
    ],
)
def test_status_codes_map_to_error_kinds(status: int, kind: ErrorKind) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": {"message": "nope"}})

    with pytest.raises(AvatarServiceError) as excinfo:
        _run(_service(handler).generate("a description", "Anime style from Zelda"))
    assert excinfo.value.kind is kind


def test_rate_limit_message_asks_to_try_again_later() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429)

    with pytest.raises(AvatarServiceError) as excinfo:
        _run(_service(handler).generate("a description", "Anime style from Zelda"))
    assert "try again later" in excinfo.value.message.lower()


def test_timeout_surfaces_as_timeout_kind(monkeypatch: pytest.MonkeyPatch) -> None:
    service = _service(lambda request: httpx.Response(200), timeout=0.01)

    async def slow_post(payload):  # noqa: ANN001, ANN202
        await asyncio.sleep(1)

    monkeypatch.setattr(service, "_post", slow_post)
    with pytest.raises(AvatarServiceError) as excinfo:
        _run(service.generate("a description", "Anime style from Zelda"))
    assert excinfo.value.kind is ErrorKind.TIMEOUT


def test_connection_failure_is_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(AvatarServiceError) as excinfo:
        _run(_service(handler).generate("a description", "Anime style from Zelda"))
    assert excinfo.value.kind is ErrorKind.NETWORK_ERROR


@pytest.mark.parametrize(
    "body",
    [{"content": []}, {"content": [{"type": "text"}]}, {"id": "msg_1"}, ["unexpected"]],
)
def test_malformed_body_is_protocol_error(body: object) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    with pytest.raises(AvatarServiceError) as excinfo:
        _run(_service(handler).generate("a description", "Anime style from Zelda"))
    assert excinfo.value.kind is ErrorKind.UPSTREAM_PROTOCOL_ERROR


def test_non_json_body_is_protocol_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(AvatarServiceError) as excinfo:
        _run(_service(handler).generate("a description", "Anime style from Zelda"))
    assert excinfo.value.kind is ErrorKind.UPSTREAM_PROTOCOL_ERROR


def test_missing_api_key_is_misconfigured() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("No request should be made without credentials")

    with pytest.raises(AvatarServiceError) as excinfo:
        _run(_service(handler, api_key="").generate("a description", "Anime style from Zelda"))
    assert excinfo.value.kind is ErrorKind.MISCONFIGURED


@pytest.mark.parametrize(("description", "style"), [("", "Anime"), ("me", "  ")])
def test_blank_inputs_are_rejected(description: str, style: str) -> None:
    service = _service(lambda request: httpx.Response(200))
    with pytest.raises(AvatarServiceError) as excinfo:
        _run(service.generate(description, style))
    assert excinfo.value.kind is ErrorKind.VALIDATION_ERROR


def test_build_prompt_embeds_both_fields() -> None:
    prompt = avatar_description.build_prompt("I love hiking", "Cartoonish style from Zelda")
    assert "based on this user description: I love hiking" in prompt
    assert "Create a detailed Cartoonish style from Zelda-style avatar" in prompt
