from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Carousel processing is capped regardless of configuration.
MAX_CAROUSEL_ITEMS = 10


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeInt = Annotated[int, Field(ge=0)]
PositiveFloat = Annotated[float, Field(gt=0)]


class ApifyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    token_env: str = "APIFY_TOKEN"
    instagram_actor: str = "apify/instagram-scraper"
    tiktok_actor: str = "clockworks/tiktok-scraper"
    run_timeout_secs: PositiveInt = 120
    dataset_limit: PositiveInt = 1

    @field_validator("token_env")
    @classmethod
    def _token_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class OpenAIConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api_key_env: str = "OPENAI_API_KEY"
    transcription_model: str = "whisper-1"
    ocr_model: str = "gpt-4o-mini"
    ocr_max_output_tokens: PositiveInt = 1000
    request_timeout_seconds: PositiveFloat = 120.0

    @field_validator("api_key_env")
    @classmethod
    def _api_key_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class StrategiesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    apify_enabled: bool = True  # still requires a token at runtime
    page_scrape_enabled: bool = True
    ytdlp_enabled: bool = True


class DownloadConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    media_timeout_seconds: PositiveFloat = 120.0
    metadata_timeout_seconds: PositiveFloat = 15.0
    ytdlp_info_timeout_seconds: PositiveFloat = 30.0
    ytdlp_download_timeout_seconds: PositiveFloat = 120.0
    ytdlp_format: str = (
        "bestvideo[height<=720]+bestaudio/best[height<=720]/bestvideo+bestaudio/best"
    )
    max_carousel_items: int = Field(MAX_CAROUSEL_ITEMS, ge=1, le=MAX_CAROUSEL_ITEMS)
    max_concurrency: PositiveInt = 4
    retry_attempts: PositiveInt = 2


class AudioConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    extract_timeout_seconds: PositiveFloat = 60.0
    min_audio_bytes: NonNegativeInt = 1000
    max_audio_bytes: PositiveInt = 25 * 1024 * 1024
    sample_rate: PositiveInt = 16000
    bitrate: str = "64k"


class FramesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    min_frames: PositiveInt = 10
    max_frames: PositiveInt = 20
    seconds_per_frame: PositiveFloat = 3.0
    fallback_duration_seconds: PositiveFloat = 30.0
    frame_width: PositiveInt = 1280
    frame_timeout_seconds: PositiveFloat = 15.0
    probe_timeout_seconds: PositiveFloat = 10.0
    max_concurrency: PositiveInt = 8

    @model_validator(mode="after")
    def _max_must_cover_min(self) -> "FramesConfig":
        if self.max_frames < self.min_frames:
            raise ValueError("max_frames must be >= min_frames")
        return self


class OCRConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    min_text_chars: NonNegativeInt = 5
    substring_min_chars: NonNegativeInt = 20
    similarity_threshold: float = Field(0.85, ge=0.0, le=1.0)
    separator: str = "\n---\n"
    max_concurrency: PositiveInt = 8


class ClassifierConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    music_match_weight: NonNegativeInt = 2
    narration_match_weight: NonNegativeInt = 3
    min_music_score: NonNegativeInt = 5
    long_sentence_words: PositiveFloat = 15.0
    long_sentence_bonus: NonNegativeInt = 3
    repetition_ratio: float = Field(0.15, ge=0.0, le=1.0)
    repetition_bonus: NonNegativeInt = 4
    rhyme_suffix_chars: PositiveInt = 3
    music_label: str = "[Background Music - Not Narration]"


class ProcessingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_concurrent_items: PositiveInt = 3


class ScratchConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    root_dir: str | None = None  # system temp dir when unset
    prefix: str = "social_extract_"

    @field_validator("prefix")
    @classmethod
    def _prefix_must_be_plain(cls, v: str) -> str:
        prefix = (v or "").strip()
        if not prefix or "/" in prefix or "\\" in prefix:
            raise ValueError("must be a non-empty name without path separators")
        return prefix


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    apify: ApifyConfig = Field(default_factory=ApifyConfig)
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    strategies: StrategiesConfig = Field(default_factory=StrategiesConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    frames: FramesConfig = Field(default_factory=FramesConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    scratch: ScratchConfig = Field(default_factory=ScratchConfig)
