import json

import httpx
import pytest

from airelay.adapters.openai import (
    OpenAIChatAdapter,
    OpenAIImageAdapter,
    OpenAISpeechAdapter,
    OpenAITranscriptionAdapter,
    parse_chat_envelope,
)
from airelay.adapters.base import BlockedEnvelope, MalformedEnvelope, TextEnvelope
from airelay.core.errors import (
    ConfigurationError,
    EmptyResponseError,
    MalformedResponseError,
    UpstreamError,
    UpstreamUnavailableError,
    ValidationError,
)
from airelay.core.history import Dialect, NormalizedHistory, normalize_history
from airelay.core.models import ReferenceImage


def _client(handler, calls: list[httpx.Request]) -> httpx.AsyncClient:
    def recording(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(recording))


def _chat_adapter(client: httpx.AsyncClient, **kwargs) -> OpenAIChatAdapter:
    return OpenAIChatAdapter(client, api_key="sk-test", model="gpt-test", base_url="https://api.test/v1", **kwargs)


def test_parse_chat_envelope_variants():
    assert parse_chat_envelope({"choices": [{"message": {"content": "Hi there"}}]}) == TextEnvelope("Hi there", None)
    listed = parse_chat_envelope({"choices": [{"message": {"content": [{"type": "text", "text": "a"}, {"text": "b"}]}}]})
    assert isinstance(listed, TextEnvelope) and listed.text == "ab"

    refused = parse_chat_envelope({"choices": [{"message": {"content": None, "refusal": "I can't help."}}]})
    assert refused == BlockedEnvelope(reason="refusal", detail="I can't help.")

    filtered = parse_chat_envelope({"choices": [{"message": {"content": ""}, "finish_reason": "content_filter"}]})
    assert isinstance(filtered, BlockedEnvelope) and filtered.reason == "content_filter"

    assert isinstance(parse_chat_envelope({"choices": []}), MalformedEnvelope)
    assert isinstance(parse_chat_envelope("upstream says hi"), MalformedEnvelope)


def test_build_payload_puts_system_first_and_message_last():
    adapter = _chat_adapter(httpx.AsyncClient(), temperature=0.3, max_tokens=256)
    history = normalize_history(
        [{"role": "user", "content": "hi"}, {"role": "ai", "content": "hello"}],
        Dialect.OPENAI,
        max_turns=20,
    )
    payload = adapter.build_payload(history, "how are you?", system_prompt="Be nice.")
    assert payload["model"] == "gpt-test"
    assert payload["stream"] is False
    assert payload["temperature"] == 0.3
    assert payload["max_tokens"] == 256
    assert payload["messages"] == [
        {"role": "system", "content": "Be nice."},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "how are you?"},
    ]


def test_build_payload_prefers_client_system_turn_over_genre_prompt():
    adapter = _chat_adapter(httpx.AsyncClient())
    history = NormalizedHistory(system="You are Johnny.", messages=[])
    payload = adapter.build_payload(history, "hello", system_prompt="genre prompt")
    assert payload["messages"][0] == {"role": "system", "content": "You are Johnny."}
    assert "temperature" not in payload


@pytest.mark.asyncio
async def test_chat_send_returns_reply_text():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": "Hi there"}, "finish_reason": "stop"}]})

    async with _client(handler, calls) as client:
        reply = await _chat_adapter(client).send(NormalizedHistory(system=None), "Hello")

    assert reply.text == "Hi there"
    assert reply.finish_reason == "stop"
    assert len(calls) == 1
    assert str(calls[0].url) == "https://api.test/v1/chat/completions"
    assert calls[0].headers["authorization"] == "Bearer sk-test"
    assert json.loads(calls[0].content)["messages"][-1] == {"role": "user", "content": "Hello"}


@pytest.mark.asyncio
async def test_chat_send_raises_upstream_error_without_retry():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "Rate limit reached", "type": "requests"}})

    async with _client(handler, calls) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await _chat_adapter(client).send(NormalizedHistory(system=None), "Hello")

    assert exc_info.value.status_code == 429
    assert exc_info.value.detail == "Rate limit reached"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_chat_send_refusal_is_empty_response():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": None, "refusal": "No."}}]})

    async with _client(handler, calls) as client:
        with pytest.raises(EmptyResponseError) as exc_info:
            await _chat_adapter(client).send(NormalizedHistory(system=None), "Hello")
    assert exc_info.value.detail == "No."


@pytest.mark.asyncio
async def test_chat_send_malformed_body():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    async with _client(handler, calls) as client:
        with pytest.raises(MalformedResponseError):
            await _chat_adapter(client).send(NormalizedHistory(system=None), "Hello")


@pytest.mark.asyncio
async def test_chat_send_unreachable_upstream():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("dns lookup failed", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await _chat_adapter(client).send(NormalizedHistory(system=None), "Hello")
    assert "dns lookup failed" in exc_info.value.detail


@pytest.mark.asyncio
async def test_missing_api_key_fails_before_network():
    calls: list[httpx.Request] = []
    async with _client(lambda request: httpx.Response(200), calls) as client:
        adapter = OpenAIChatAdapter(client, api_key="", model="gpt-test")
        with pytest.raises(ConfigurationError):
            await adapter.send(NormalizedHistory(system=None), "Hello")
    assert calls == []


@pytest.mark.asyncio
async def test_speech_returns_wav_bytes():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"RIFFfake", headers={"content-type": "audio/wav"})

    async with _client(handler, calls) as client:
        adapter = OpenAISpeechAdapter(client, api_key="sk-test", model="gpt-4o-mini-tts", base_url="https://api.test/v1")
        audio = await adapter.send("Hello there.", voice="verse")

    assert audio.audio == b"RIFFfake"
    assert audio.mime_type == "audio/wav"
    body = json.loads(calls[0].content)
    assert body == {"model": "gpt-4o-mini-tts", "voice": "verse", "input": "Hello there.", "response_format": "wav"}


@pytest.mark.asyncio
async def test_speech_upstream_error_carries_provider_message():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "Invalid voice"}})

    async with _client(handler, calls) as client:
        adapter = OpenAISpeechAdapter(client, api_key="sk-test", model="tts-1")
        with pytest.raises(UpstreamError) as exc_info:
            await adapter.send("hi")
    assert exc_info.value.detail == "Invalid voice"


@pytest.mark.asyncio
async def test_transcription_rejects_empty_audio_before_upstream():
    calls: list[httpx.Request] = []
    async with _client(lambda request: httpx.Response(200, json={"text": "x"}), calls) as client:
        adapter = OpenAITranscriptionAdapter(client, api_key="sk-test", model="whisper-1")
        with pytest.raises(ValidationError):
            await adapter.send(b"")
    assert calls == []


@pytest.mark.asyncio
async def test_transcription_posts_multipart_and_returns_text():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"text": "turn on the lights"})

    async with _client(handler, calls) as client:
        adapter = OpenAITranscriptionAdapter(client, api_key="sk-test", model="whisper-1", base_url="https://api.test/v1")
        text = await adapter.send(b"webm-bytes", "speech.webm", "audio/webm")

    assert text == "turn on the lights"
    assert str(calls[0].url) == "https://api.test/v1/audio/transcriptions"
    assert calls[0].headers["content-type"].startswith("multipart/form-data")
    assert b'name="model"' in calls[0].content
    assert b"whisper-1" in calls[0].content
    assert b'filename="speech.webm"' in calls[0].content


@pytest.mark.asyncio
async def test_image_generation_and_edit_endpoints():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"b64_json": "aW1n"}], "output_format": "png"})

    async with _client(handler, calls) as client:
        adapter = OpenAIImageAdapter(client, api_key="sk-test", model="gpt-image-1", base_url="https://api.test/v1")
        generated = await adapter.send("a lighthouse at dusk")
        edited = await adapter.send("make it snowy", [ReferenceImage(mime_type="image/png", data_b64="aW1n")])

    assert generated.data_b64 == "aW1n"
    assert generated.mime_type == "image/png"
    assert edited.data_b64 == "aW1n"
    assert str(calls[0].url) == "https://api.test/v1/images/generations"
    assert json.loads(calls[0].content)["prompt"] == "a lighthouse at dusk"
    assert str(calls[1].url) == "https://api.test/v1/images/edits"
    assert b'name="image[]"' in calls[1].content
