import json
from functools import lru_cache

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Cutline Export API"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "http://localhost:5173,http://localhost:3000"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # Local storage for ingested byte sources
    local_storage_path: str = "/tmp/cutline-storage"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Render settings
    render_fps: int = 30
    render_video_codec: str = "libx264"
    render_preset: str = "medium"
    render_crf: int = 18
    render_audio_codec: str = "aac"
    render_audio_bitrate: str = "192k"

    # Export
    export_work_dir_prefix: str = "cutline_export_"
    asset_fetch_timeout_s: float = 60.0
    # Abort the export when any referenced asset cannot be fetched.
    # When False the affected clips are dropped from the graph instead.
    strict_asset_resolution: bool = False

    # Text rendering font. A local path wins over the download URL.
    text_font_path: str = ""
    text_font_url: str = "https://raw.githubusercontent.com/google/fonts/main/ofl/inter/Inter-Bold.ttf"

    # Preview clock
    preview_max_tick_s: float = 0.1


@lru_cache
def get_settings() -> Settings:
    return Settings()
