import httpx
import pytest

from airelay.adapters.elevenlabs import ElevenLabsSpeechAdapter
from airelay.adapters.gemini import GeminiChatAdapter, GeminiImageAdapter
from airelay.adapters.google_tts import GoogleSpeechAdapter
from airelay.adapters.openai import OpenAIChatAdapter, OpenAIImageAdapter, OpenAISpeechAdapter
from airelay.adapters.registry import (
    create_chat_adapter,
    create_image_adapter,
    create_providers,
    create_speech_adapter,
)
from airelay.config.settings import Settings
from airelay.core.errors import ConfigurationError
from airelay.core.history import Dialect


def test_default_provider_selection():
    client = httpx.AsyncClient()
    settings = Settings(chat_provider="openai", speech_provider="openai", image_provider="gemini")
    providers = create_providers(settings, client=client)

    assert isinstance(providers.chat, OpenAIChatAdapter)
    assert providers.chat.dialect == Dialect.OPENAI
    assert isinstance(providers.speech, OpenAISpeechAdapter)
    assert isinstance(providers.image, GeminiImageAdapter)
    assert providers.client is client
    assert providers.history_max_turns == settings.history_max_turns


def test_alternate_providers():
    client = httpx.AsyncClient()
    settings = Settings(
        chat_provider=" Gemini ",
        speech_provider="elevenlabs",
        image_provider="openai",
        chat_search_grounding=True,
    )

    chat = create_chat_adapter(settings, client)
    assert isinstance(chat, GeminiChatAdapter)
    assert chat.dialect == Dialect.GEMINI
    assert chat.search_grounding is True
    assert isinstance(create_speech_adapter(settings, client), ElevenLabsSpeechAdapter)
    assert isinstance(create_image_adapter(settings, client), OpenAIImageAdapter)

    google = Settings(speech_provider="google")
    assert isinstance(create_speech_adapter(google, client), GoogleSpeechAdapter)


@pytest.mark.parametrize(
    ("factory", "field"),
    [
        (create_chat_adapter, "chat_provider"),
        (create_speech_adapter, "speech_provider"),
        (create_image_adapter, "image_provider"),
    ],
)
def test_unknown_provider_raises(factory, field):
    settings = Settings(**{field: "carrier-pigeon"})
    with pytest.raises(ConfigurationError):
        factory(settings, httpx.AsyncClient())


@pytest.mark.asyncio
async def test_aclose_closes_shared_client():
    client = httpx.AsyncClient()
    providers = create_providers(Settings(), client=client)
    await providers.aclose()
    assert client.is_closed
