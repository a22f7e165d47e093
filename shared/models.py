"""
Data models for tracks and playlists.

This module defines the records kept in the metadata store for every
uploaded track and user playlist.
"""

from dataclasses import dataclass, asdict, field, fields
from typing import List, Dict, Optional, Any
from enum import Enum
import uuid
from datetime import datetime, timezone


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


class StorageProvider(Enum):
    """Supported storage backends."""
    CLOUDFLARE_R2 = "r2"
    BACKBLAZE_B2 = "b2"
    AWS_S3 = "s3"
    GENERIC_S3 = "generic"
    LOCAL = "local"


@dataclass
class Track:
    """
    Represents a single uploaded track.

    Attributes:
        id: Unique identifier (UUID)
        owner: Identity of the uploading user
        name: Display name (title tag, or the file stem)
        artist: Artist name
        album: Album name
        duration_ms: Duration in milliseconds
        storage_key: Key of the processed (pitch-shifted) MP3
        original_key: Key of the original upload
        file_size: Size of the processed object in bytes
        pitch_factor: Resampling ratio applied during processing
        year: Release year (optional)
        cover_key: Key of the extracted cover image (optional)
        uploaded_at: ISO-8601 UTC timestamp
    """
    id: str
    owner: str
    name: str
    artist: str
    album: str
    duration_ms: int
    storage_key: str
    original_key: str
    file_size: int
    pitch_factor: float
    year: Optional[int] = None
    cover_key: Optional[str] = None
    uploaded_at: str = field(default_factory=utc_now)

    @staticmethod
    def generate_id() -> str:
        """Generate a unique track ID."""
        return str(uuid.uuid4())

    def to_dict(self) -> Dict[str, Any]:
        """Convert track to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Track':
        """Create Track from dictionary, filtering unknown keys."""
        field_names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in field_names})


@dataclass
class Playlist:
    """An ordered, named list of one owner's tracks."""
    id: str
    owner: str
    name: str
    track_ids: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
