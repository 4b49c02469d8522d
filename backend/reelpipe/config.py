"""Configuration management with YAML and environment variable support."""

import os
from pathlib import Path
from typing import ClassVar, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

CONFIG_FILE_ENV = "REELPIPE_CONFIG_FILE"


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        yaml_path = Path(os.environ.get(CONFIG_FILE_ENV, "config.yaml"))
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class GoogleCloudConfig(BaseModel):
    """Google Cloud configuration for Vertex AI models (gemini-* ids)."""

    project_id: Optional[str] = None
    location: str = "us-central1"


class ModelsConfig(BaseModel):
    """AI model identifiers."""

    script_llm: str = "gpt-4o"
    script_temperature: float = 0.9
    speech_model: str = "eleven_multilingual_v2"
    image_model: str = "black-forest-labs/flux-dev"


class ProvidersConfig(BaseModel):
    """Credentials and endpoints for the generative content providers."""

    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_voice_id: Optional[str] = None
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"
    replicate_api_token: Optional[str] = None
    replicate_base_url: str = "https://api.replicate.com/v1"
    ollama_endpoint: str = "http://localhost:11434"
    ollama_api_key: Optional[str] = None
    request_timeout: float = 120.0


class SpeechConfig(BaseModel):
    """Voice settings sent with every narration request."""

    stability: float = 0.75
    similarity_boost: float = 0.75
    style_exaggeration: float = 0.30


class ImagesConfig(BaseModel):
    """Image generation parameters."""

    aspect_ratio: str = "9:16"
    output_format: str = "jpg"
    count: int = 1


class MediaConfig(BaseModel):
    """Encoder binaries and composition parameters."""

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    fps: int = 60
    initial_zoom: float = 1.0
    final_zoom: float = 1.5
    prescale_width: int = 8000
    video_codec: str = "libx264"
    pixel_format: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"
    container: str = "mp4"
    clip_width: int = 1080
    clip_height: int = 1920


class PipelineConfig(BaseModel):
    """Pipeline execution parameters."""

    scene_concurrency: int = Field(default=1, ge=1)
    retry_max_attempts: int = 3
    retry_base_delay: int = 2
    run_deadline_seconds: Optional[float] = 900


class ScheduleConfig(BaseModel):
    """Fixed daily schedule for unattended runs (UTC)."""

    enabled: bool = False
    hours_utc: list[int] = Field(default_factory=lambda: [0, 8, 16])
    minute: int = 0

    @field_validator("hours_utc")
    @classmethod
    def validate_hours(cls, v):
        """Reject hours outside 0-23 and keep the list sorted."""
        if not v:
            raise ValueError("hours_utc must not be empty")
        for hour in v:
            if not 0 <= hour <= 23:
                raise ValueError(f"invalid hour: {hour}")
        return sorted(set(v))


class StorageConfig(BaseModel):
    """Storage and database configuration."""

    database_url: str = "sqlite+aiosqlite:///reelpipe.db"
    tmp_dir: Path = Path("tmp")
    blob_backend: Literal["local", "s3"] = "local"
    blob_root: Path = Path("tmp/blobs")
    working_bucket: str = "reelpipe-working"
    public_bucket: str = "reelpipe-public"
    aws_region: Optional[str] = None
    list_page_size: int = Field(default=100, ge=1)

    @field_validator("tmp_dir", "blob_root", mode="before")
    @classmethod
    def convert_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: REELPIPE_, delimiter: __)
    2. .env file
    3. YAML file (config.yaml or $REELPIPE_CONFIG_FILE)
    4. Init arguments and field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="REELPIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    google_cloud: GoogleCloudConfig = Field(default_factory=GoogleCloudConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration.

        Priority order (highest to lowest):
        1. Environment variables
        2. .env file
        3. YAML file
        4. Init settings (programmatic defaults)
        """
        return (
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            init_settings,
        )


def load_settings(**overrides) -> Settings:
    """Build a fresh Settings instance for process start.

    Loads .env into os.environ first so provider SDKs that read their own
    variables (e.g. GOOGLE_APPLICATION_CREDENTIALS) see them too.
    """
    load_dotenv()
    return Settings(**overrides)
