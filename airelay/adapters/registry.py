"""Provider selection: builds every adapter once from settings around a shared HTTP client."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from airelay.adapters.base import ChatAdapter, ImageAdapter, SpeechAdapter, TranscriptionAdapter
from airelay.adapters.elevenlabs import ElevenLabsSpeechAdapter
from airelay.adapters.gemini import GeminiChatAdapter, GeminiImageAdapter, GeminiVisionAdapter
from airelay.adapters.google_search import GoogleImageSearchAdapter
from airelay.adapters.google_tts import GoogleSpeechAdapter
from airelay.adapters.openai import (
    OpenAIChatAdapter,
    OpenAIImageAdapter,
    OpenAISpeechAdapter,
    OpenAITranscriptionAdapter,
)
from airelay.adapters.upstream import build_upstream_client
from airelay.config.settings import Settings
from airelay.core.errors import ConfigurationError
from airelay.util.logger import logger


@dataclass(slots=True)
class Providers:
    client: httpx.AsyncClient
    chat: ChatAdapter
    speech: SpeechAdapter
    transcription: TranscriptionAdapter
    image: ImageAdapter
    image_search: GoogleImageSearchAdapter
    vision: GeminiVisionAdapter
    history_max_turns: int = 20
    speech_max_chars: int = 700
    speech_boundary_window: int = 200
    max_upload_bytes: int = 25_000_000

    async def aclose(self) -> None:
        await self.client.aclose()


def create_chat_adapter(settings: Settings, client: httpx.AsyncClient) -> ChatAdapter:
    backend = settings.chat_provider.strip().lower()
    if backend == "gemini":
        return GeminiChatAdapter(
            client,
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            temperature=settings.chat_temperature,
            max_output_tokens=settings.chat_max_output_tokens,
            safety_threshold=settings.gemini_safety_threshold or None,
            search_grounding=settings.chat_search_grounding,
        )
    if backend == "openai":
        return OpenAIChatAdapter(
            client,
            api_key=settings.openai_api_key,
            model=settings.model,
            base_url=settings.openai_base_url,
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_output_tokens,
        )
    raise ConfigurationError(f"unknown chat provider: {settings.chat_provider}")


def create_speech_adapter(settings: Settings, client: httpx.AsyncClient) -> SpeechAdapter:
    backend = settings.speech_provider.strip().lower()
    if backend == "elevenlabs":
        return ElevenLabsSpeechAdapter(
            client,
            api_key=settings.elevenlabs_api_key,
            voice_id=settings.elevenlabs_voice_id,
            model=settings.elevenlabs_model,
            base_url=settings.elevenlabs_base_url,
        )
    if backend in {"google", "google_tts"}:
        return GoogleSpeechAdapter(
            client,
            api_key=settings.google_tts_api_key,
            voice=settings.google_tts_voice,
            language_code=settings.google_tts_language,
            base_url=settings.google_tts_base_url,
        )
    if backend == "openai":
        return OpenAISpeechAdapter(
            client,
            api_key=settings.openai_api_key,
            model=settings.tts_model,
            voice=settings.tts_voice,
            base_url=settings.openai_base_url,
        )
    raise ConfigurationError(f"unknown speech provider: {settings.speech_provider}")


def create_image_adapter(settings: Settings, client: httpx.AsyncClient) -> ImageAdapter:
    backend = settings.image_provider.strip().lower()
    if backend == "openai":
        return OpenAIImageAdapter(
            client,
            api_key=settings.openai_api_key,
            model=settings.openai_image_model,
            size=settings.openai_image_size,
            base_url=settings.openai_base_url,
        )
    if backend == "gemini":
        return GeminiImageAdapter(
            client,
            api_key=settings.gemini_api_key,
            model=settings.image_model,
            base_url=settings.gemini_base_url,
            search_grounding=settings.image_search_grounding,
        )
    raise ConfigurationError(f"unknown image provider: {settings.image_provider}")


def create_providers(settings: Settings, client: httpx.AsyncClient | None = None) -> Providers:
    http_client = client or build_upstream_client(settings)
    providers = Providers(
        client=http_client,
        chat=create_chat_adapter(settings, http_client),
        speech=create_speech_adapter(settings, http_client),
        transcription=OpenAITranscriptionAdapter(
            http_client,
            api_key=settings.openai_api_key,
            model=settings.s2t_model,
            base_url=settings.openai_base_url,
        ),
        image=create_image_adapter(settings, http_client),
        image_search=GoogleImageSearchAdapter(
            http_client,
            api_key=settings.google_search_api_key,
            cx=settings.google_search_cx,
            base_url=settings.google_search_base_url,
        ),
        vision=GeminiVisionAdapter(
            http_client,
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
        ),
        history_max_turns=settings.history_max_turns,
        speech_max_chars=settings.speech_max_chars,
        speech_boundary_window=settings.speech_boundary_window,
        max_upload_bytes=settings.max_upload_bytes,
    )
    logger.info(
        "providers ready chat=%s speech=%s image=%s",
        providers.chat.name,
        providers.speech.name,
        providers.image.name,
    )
    return providers
