import json

import httpx
import pytest

from airelay.adapters.base import BlockedEnvelope, InlineImageEnvelope, MalformedEnvelope, TextEnvelope
from airelay.adapters.gemini import (
    HARM_CATEGORIES,
    GeminiChatAdapter,
    GeminiImageAdapter,
    GeminiVisionAdapter,
    is_unsupported_tool_error,
    parse_chat_envelope,
    parse_image_envelope,
)
from airelay.core.errors import EmptyResponseError, UpstreamError
from airelay.core.history import Dialect, NormalizedHistory, normalize_history
from airelay.core.models import ReferenceImage

BASE_URL = "https://gemini.test/v1beta"


def _text_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]}


def _image_body(data: str = "aW1n", mime_type: str = "image/png") -> dict:
    return {
        "candidates": [
            {
                "content": {"parts": [{"text": "Here you go."}, {"inlineData": {"mimeType": mime_type, "data": data}}]},
                "finishReason": "STOP",
            }
        ]
    }


def _recording_client(responses: list[httpx.Response], calls: list[httpx.Request]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return responses[min(len(calls), len(responses)) - 1]

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_parse_chat_envelope_text_and_thoughts():
    body = {
        "candidates": [
            {
                "content": {"parts": [{"text": "thinking...", "thought": True}, {"text": "The door opens."}]},
                "finishReason": "STOP",
            }
        ]
    }
    assert parse_chat_envelope(body) == TextEnvelope(text="The door opens.", finish_reason="STOP")


def test_parse_chat_envelope_safety_block_lists_categories():
    body = {
        "candidates": [
            {
                "finishReason": "SAFETY",
                "safetyRatings": [
                    {"category": "HARM_CATEGORY_HARASSMENT", "probability": "HIGH", "blocked": True},
                    {"category": "HARM_CATEGORY_HATE_SPEECH", "probability": "LOW"},
                ],
            }
        ]
    }
    envelope = parse_chat_envelope(body)
    assert isinstance(envelope, BlockedEnvelope)
    assert envelope.reason == "SAFETY"
    assert "HARM_CATEGORY_HARASSMENT" in envelope.detail
    assert "HARM_CATEGORY_HATE_SPEECH" not in envelope.detail


def test_parse_chat_envelope_prompt_feedback_and_malformed():
    blocked = parse_chat_envelope({"promptFeedback": {"blockReason": "OTHER"}})
    assert blocked == BlockedEnvelope(reason="OTHER", detail="prompt blocked: OTHER")
    assert isinstance(parse_chat_envelope({}), MalformedEnvelope)
    assert isinstance(parse_chat_envelope("<html>bad gateway</html>"), MalformedEnvelope)


def test_parse_image_envelope_variants():
    assert parse_image_envelope(_image_body()) == InlineImageEnvelope(data_b64="aW1n", mime_type="image/png", text="Here you go.")

    snake = {"candidates": [{"content": {"parts": [{"inline_data": {"mime_type": "image/jpeg", "data": "eA=="}}]}}]}
    envelope = parse_image_envelope(snake)
    assert isinstance(envelope, InlineImageEnvelope)
    assert envelope.mime_type == "image/jpeg"

    text_only = parse_image_envelope(_text_body("I can't draw that."))
    assert isinstance(text_only, BlockedEnvelope)
    assert text_only.reason == "text_only"
    assert text_only.detail == "I can't draw that."


def test_is_unsupported_tool_error():
    assert is_unsupported_tool_error(UpstreamError(400, {}, detail="google_search tool is not supported for this model"))
    assert is_unsupported_tool_error(UpstreamError(400, {}, detail="Search Grounding is not enabled"))
    assert not is_unsupported_tool_error(UpstreamError(400, {}, detail="Invalid argument: contents"))
    assert not is_unsupported_tool_error(UpstreamError(500, {}, detail="tool not supported"))


def test_chat_build_payload():
    adapter = GeminiChatAdapter(
        httpx.AsyncClient(),
        api_key="g-test",
        model="gemini-test",
        base_url=BASE_URL,
        temperature=0.9,
        max_output_tokens=512,
        search_grounding=True,
    )
    history = normalize_history([{"role": "assistant", "content": "You wake in a cave."}], Dialect.GEMINI, 20)
    payload = adapter.build_payload(history, "look around", system_prompt="You are the GM.")

    assert payload["contents"] == [
        {"role": "user", "parts": [{"text": "(continued)"}]},
        {"role": "model", "parts": [{"text": "You wake in a cave."}]},
        {"role": "user", "parts": [{"text": "look around"}]},
    ]
    assert payload["systemInstruction"] == {"parts": [{"text": "You are the GM."}]}
    assert payload["generationConfig"] == {"temperature": 0.9, "maxOutputTokens": 512}
    assert [item["category"] for item in payload["safetySettings"]] == list(HARM_CATEGORIES)
    assert {item["threshold"] for item in payload["safetySettings"]} == {"BLOCK_ONLY_HIGH"}
    assert payload["tools"] == [{"google_search": {}}]


@pytest.mark.asyncio
async def test_chat_send_posts_generate_content():
    calls: list[httpx.Request] = []
    async with _recording_client([httpx.Response(200, json=_text_body("Hi there"))], calls) as client:
        adapter = GeminiChatAdapter(client, api_key="g-test", model="gemini-test", base_url=BASE_URL)
        reply = await adapter.send(NormalizedHistory(system=None), "Hello")

    assert reply.text == "Hi there"
    assert len(calls) == 1
    assert str(calls[0].url) == f"{BASE_URL}/models/gemini-test:generateContent"
    assert calls[0].headers["x-goog-api-key"] == "g-test"


@pytest.mark.asyncio
async def test_chat_send_safety_block_raises_empty_response():
    calls: list[httpx.Request] = []
    body = {"candidates": [{"finishReason": "SAFETY", "safetyRatings": [{"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "blocked": True}]}]}
    async with _recording_client([httpx.Response(200, json=body)], calls) as client:
        adapter = GeminiChatAdapter(client, api_key="g-test", model="gemini-test", base_url=BASE_URL)
        with pytest.raises(EmptyResponseError) as exc_info:
            await adapter.send(NormalizedHistory(system=None), "Hello")
    assert "finishReason=SAFETY" in exc_info.value.detail


@pytest.mark.asyncio
async def test_image_retries_once_without_tools_when_search_is_unsupported():
    calls: list[httpx.Request] = []
    responses = [
        httpx.Response(400, json={"error": {"code": 400, "message": "google_search tool is not supported for this model"}}),
        httpx.Response(200, json=_image_body()),
    ]
    async with _recording_client(responses, calls) as client:
        adapter = GeminiImageAdapter(client, api_key="g-test", model="image-test", base_url=BASE_URL, search_grounding=True)
        result = await adapter.send("a castle on a hill")

    assert result.data_b64 == "aW1n"
    assert result.mime_type == "image/png"
    assert result.note == "Here you go."
    assert len(calls) == 2
    first, second = (json.loads(call.content) for call in calls)
    assert first["tools"] == [{"google_search": {}}]
    assert "tools" not in second
    assert second["contents"] == first["contents"]
    assert second["generationConfig"] == {"responseModalities": ["TEXT", "IMAGE"]}


@pytest.mark.asyncio
async def test_image_does_not_retry_other_errors():
    calls: list[httpx.Request] = []
    responses = [httpx.Response(400, json={"error": {"message": "Invalid argument: contents"}})]
    async with _recording_client(responses, calls) as client:
        adapter = GeminiImageAdapter(client, api_key="g-test", model="image-test", base_url=BASE_URL, search_grounding=True)
        with pytest.raises(UpstreamError) as exc_info:
            await adapter.send("a castle")
    assert exc_info.value.status_code == 400
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_image_retry_failure_propagates():
    calls: list[httpx.Request] = []
    responses = [
        httpx.Response(400, json={"error": {"message": "Search grounding is not supported"}}),
        httpx.Response(503, json={"error": {"message": "overloaded"}}),
    ]
    async with _recording_client(responses, calls) as client:
        adapter = GeminiImageAdapter(client, api_key="g-test", model="image-test", base_url=BASE_URL, search_grounding=True)
        with pytest.raises(UpstreamError) as exc_info:
            await adapter.send("a castle")
    assert exc_info.value.status_code == 503
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_image_edit_sends_reference_images_inline():
    calls: list[httpx.Request] = []
    async with _recording_client([httpx.Response(200, json=_image_body())], calls) as client:
        adapter = GeminiImageAdapter(client, api_key="g-test", model="image-test", base_url=BASE_URL)
        await adapter.send(
            "add a hat",
            [ReferenceImage(mime_type="image/png", data_b64="AAAA"), ReferenceImage(mime_type="image/jpeg", data_b64="BBBB")],
        )

    body = json.loads(calls[0].content)
    assert "tools" not in body
    assert body["contents"][0]["parts"] == [
        {"text": "add a hat"},
        {"inline_data": {"mime_type": "image/png", "data": "AAAA"}},
        {"inline_data": {"mime_type": "image/jpeg", "data": "BBBB"}},
    ]


@pytest.mark.asyncio
async def test_image_text_only_reply_is_empty_response():
    calls: list[httpx.Request] = []
    async with _recording_client([httpx.Response(200, json=_text_body("Sorry, no."))], calls) as client:
        adapter = GeminiImageAdapter(client, api_key="g-test", model="image-test", base_url=BASE_URL)
        with pytest.raises(EmptyResponseError):
            await adapter.send("something")


@pytest.mark.asyncio
async def test_vision_answers_about_image():
    calls: list[httpx.Request] = []
    async with _recording_client([httpx.Response(200, json=_text_body("A red bicycle."))], calls) as client:
        adapter = GeminiVisionAdapter(client, api_key="g-test", model="gemini-test", base_url=BASE_URL)
        reply = await adapter.send("What is this?", ReferenceImage(mime_type="image/jpeg", data_b64="eA=="))

    assert reply.text == "A red bicycle."
    parts = json.loads(calls[0].content)["contents"][0]["parts"]
    assert parts[1] == {"inline_data": {"mime_type": "image/jpeg", "data": "eA=="}}
