"""Runtime settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 与原有部署保持一致：直接读取 OPENAI_API_KEY / MODEL / PORT 等变量，不加前缀
    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    app_name: str = "airelay"
    log_level: str = "info"
    # 空串表示只输出到 stderr
    log_dir: str = "logs"
    host: str = "0.0.0.0"
    port: int = 3000
    cors_allow_origins: str = "*"
    prompts_path: str = "config/prompts.yaml"

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    elevenlabs_api_key: str = ""
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    google_tts_api_key: str = ""
    google_tts_base_url: str = "https://texttospeech.googleapis.com"
    google_search_api_key: str = ""
    google_search_cx: str = ""
    google_search_base_url: str = "https://www.googleapis.com/customsearch/v1"

    chat_provider: str = "openai"  # openai | gemini
    speech_provider: str = "openai"  # openai | elevenlabs | google
    image_provider: str = "gemini"  # gemini | openai

    # MODEL 是原服务使用的变量名
    model: str = "gpt-4.1-nano"
    gemini_model: str = "gemini-2.0-flash"
    s2t_model: str = "whisper-1"
    tts_model: str = "gpt-4o-mini-tts"
    tts_voice: str = "alloy"
    elevenlabs_model: str = "eleven_multilingual_v2"
    elevenlabs_voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    google_tts_voice: str = "en-US-Neural2-D"
    google_tts_language: str = "en-US"
    image_model: str = "gemini-2.0-flash-preview-image-generation"
    openai_image_model: str = "gpt-image-1"
    openai_image_size: str = "1024x1024"

    chat_temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    chat_max_output_tokens: int | None = None
    gemini_safety_threshold: str = "BLOCK_ONLY_HIGH"
    chat_search_grounding: bool = False
    image_search_grounding: bool = False

    history_max_turns: int = 20
    speech_max_chars: int = 700
    speech_boundary_window: int = 200
    max_request_body_bytes: int = 30_000_000
    max_upload_bytes: int = 25_000_000
    # <=0 表示不设置超时（与原服务行为一致）
    upstream_timeout_seconds: float = 120.0
    upstream_max_connections: int = 100
    upstream_max_keepalive_connections: int = 20

    @property
    def cors_origin_list(self) -> list[str]:
        return [item.strip() for item in self.cors_allow_origins.split(",") if item.strip()]


settings = Settings()
