"""
Service configuration loaded from the environment (and an optional .env file).
"""

import math
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

from shared.constants import (
    DEFAULT_CODEC_TIMEOUT,
    DEFAULT_DATABASE_PATH,
    DEFAULT_HOST,
    DEFAULT_INTERPOLATION,
    DEFAULT_LOCAL_STORAGE_PATH,
    DEFAULT_MAX_UPLOAD_MB,
    DEFAULT_MP3_BITRATE,
    DEFAULT_PITCH_FACTOR,
    DEFAULT_PORT,
    DEFAULT_RADIO_TIMEOUT,
    DEFAULT_STREAM_CHUNK_SIZE,
    MAX_RADIO_FALLBACKS,
)
from shared.models import StorageProvider


def _split_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_api_tokens(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``token:owner,token:owner`` into a token -> owner mapping."""
    tokens = {}
    for pair in _split_list(raw):
        token, sep, owner = pair.partition(":")
        if not sep or not token or not owner:
            raise ValueError(f"Invalid API_TOKENS entry: {pair!r} (expected token:owner)")
        tokens[token] = owner
    return tokens


@dataclass
class ServiceConfig:
    """
    Runtime configuration for the API server, the upload pipeline and the CLI.

    Attributes:
        storage_provider: Which storage backend holds the audio objects
        storage_bucket: Bucket name (S3-compatible providers) or subdirectory (local)
        storage_endpoint: Explicit S3 endpoint URL (generic providers)
        storage_region: Provider region (AWS S3, Backblaze B2)
        storage_account_id: Cloudflare account id (R2)
        local_storage_path: Root directory for the local provider
        database_path: SQLite file holding track and playlist metadata
        pitch_factor: Resampling ratio applied to uploads
        interpolation: ``cubic`` or ``linear``
        radio_sources: Upstream feed URLs, primary first
    """
    storage_provider: StorageProvider = StorageProvider.LOCAL
    storage_bucket: str = "default"
    storage_endpoint: Optional[str] = None
    storage_region: Optional[str] = None
    storage_account_id: Optional[str] = None
    storage_access_key_id: Optional[str] = None
    storage_secret_access_key: Optional[str] = None
    local_storage_path: str = DEFAULT_LOCAL_STORAGE_PATH
    database_path: str = DEFAULT_DATABASE_PATH
    pitch_factor: float = DEFAULT_PITCH_FACTOR
    interpolation: str = DEFAULT_INTERPOLATION
    mp3_bitrate: int = DEFAULT_MP3_BITRATE
    codec_timeout: float = DEFAULT_CODEC_TIMEOUT
    stream_chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE
    max_upload_mb: int = DEFAULT_MAX_UPLOAD_MB
    radio_sources: List[str] = field(default_factory=list)
    radio_timeout: float = DEFAULT_RADIO_TIMEOUT
    api_tokens: Dict[str, str] = field(default_factory=dict)
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    def __post_init__(self):
        if not math.isfinite(self.pitch_factor) or self.pitch_factor <= 0:
            raise ValueError(f"PITCH_FACTOR must be a positive finite number, got {self.pitch_factor}")
        if self.interpolation not in ("cubic", "linear"):
            raise ValueError(f"PITCH_INTERPOLATION must be 'cubic' or 'linear', got {self.interpolation!r}")
        if self.stream_chunk_size <= 0 or self.max_upload_mb <= 0 or self.mp3_bitrate <= 0:
            raise ValueError("STREAM_CHUNK_SIZE, MAX_UPLOAD_MB and MP3_BITRATE must be positive")
        if self.codec_timeout <= 0 or self.radio_timeout <= 0:
            raise ValueError("Timeouts must be positive")
        if len(self.radio_sources) > MAX_RADIO_FALLBACKS + 1:
            raise ValueError(
                f"RADIO_SOURCES allows one primary and at most {MAX_RADIO_FALLBACKS} fallbacks"
            )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ServiceConfig':
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ`` (no .env loading then)

        Raises:
            ValueError: If a variable holds an invalid value
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        def get(name, default=None):
            value = environ.get(name)
            return value if value not in (None, "") else default

        try:
            return cls(
                storage_provider=StorageProvider(get("STORAGE_PROVIDER", StorageProvider.LOCAL.value)),
                storage_bucket=get("STORAGE_BUCKET", "default"),
                storage_endpoint=get("STORAGE_ENDPOINT"),
                storage_region=get("STORAGE_REGION"),
                storage_account_id=get("STORAGE_ACCOUNT_ID"),
                storage_access_key_id=get("STORAGE_ACCESS_KEY_ID"),
                storage_secret_access_key=get("STORAGE_SECRET_ACCESS_KEY"),
                local_storage_path=get("LOCAL_STORAGE_PATH", DEFAULT_LOCAL_STORAGE_PATH),
                database_path=get("DATABASE_PATH", DEFAULT_DATABASE_PATH),
                pitch_factor=float(get("PITCH_FACTOR", DEFAULT_PITCH_FACTOR)),
                interpolation=get("PITCH_INTERPOLATION", DEFAULT_INTERPOLATION).lower(),
                mp3_bitrate=int(get("MP3_BITRATE", DEFAULT_MP3_BITRATE)),
                codec_timeout=float(get("CODEC_TIMEOUT", DEFAULT_CODEC_TIMEOUT)),
                stream_chunk_size=int(get("STREAM_CHUNK_SIZE", DEFAULT_STREAM_CHUNK_SIZE)),
                max_upload_mb=int(get("MAX_UPLOAD_MB", DEFAULT_MAX_UPLOAD_MB)),
                radio_sources=_split_list(get("RADIO_SOURCES")),
                radio_timeout=float(get("RADIO_TIMEOUT", DEFAULT_RADIO_TIMEOUT)),
                api_tokens=parse_api_tokens(get("API_TOKENS")),
                host=get("HOST", DEFAULT_HOST),
                port=int(get("PORT", DEFAULT_PORT)),
                log_level=get("LOG_LEVEL", "INFO").upper(),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid configuration: {e}") from e
