"""Global settings loaded from environment variables via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VIDBLOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = "sqlite:///./data/vidblog.db"
    log_dir: str = "./data/logs"
    temp_dir: str = "./data/tmp"
    proxy_url: str = ""

    # Deepgram transcription
    deepgram_api_key: str = ""
    deepgram_model: str = "nova-2"
    deepgram_language: str = "en-US"
    deepgram_timeout: float = 30.0

    # OpenAI generation
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_timeout: float = 60.0
    openai_max_tokens: int = 4000
    openai_temperature: float = 0.7

    # Video fetch
    max_video_size_bytes: int = 500 * 1024 * 1024
    video_fetch_timeout: float = 30.0
    # Whole download + audio extraction; video_fetch_timeout bounds each read
    video_download_deadline: float = 600.0

    # Publishing
    publish_timeout: float = 30.0

    # A job left fetching, transcribing or publishing past its stage deadline
    # plus this grace period is reclaimed by the next attempt
    stale_stage_grace: float = 60.0

    max_transcript_chars: int = 500_000

    # Polling client cadence
    poll_interval: float = 3.0
    poll_max_retries: int = 10

    # Rate limits (per caller, fixed window)
    rate_limit_requests: int = 100
    rate_limit_window_seconds: float = 60.0

    # Comma-separated "token:owner" pairs accepted as bearer tokens
    api_tokens: str = ""

    # Owner identity used by local CLI commands
    cli_owner: str = "local"

    def token_owners(self) -> dict[str, str]:
        """Parse ``api_tokens`` into a token -> owner mapping."""
        owners: dict[str, str] = {}
        for pair in self.api_tokens.split(","):
            token, sep, owner = pair.strip().partition(":")
            if sep and token and owner:
                owners[token] = owner
        return owners
