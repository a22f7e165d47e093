"""
Audio file inspection utilities.

This module handles upload validation, tag extraction and embedded cover art.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mutagen import MutagenError
from mutagen.id3 import ID3NoHeaderError
from mutagen.mp3 import MP3, HeaderNotFoundError

from shared.constants import SUPPORTED_UPLOAD_FORMATS, SUPPORTED_UPLOAD_MIMETYPES

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


@dataclass
class CoverArt:
    data: bytes
    mime: str = "image/jpeg"

    @property
    def extension(self) -> str:
        ext = self.mime.split("/")[-1].lower() if "/" in self.mime else "jpg"
        return "jpg" if ext in ("jpeg", "") else ext


@dataclass
class TrackTags:
    """Tags read from an uploaded file, with placeholders for missing ones."""
    title: str = UNKNOWN_TITLE
    artist: str = UNKNOWN_ARTIST
    album: str = UNKNOWN_ALBUM
    year: Optional[int] = None
    duration_ms: int = 0
    cover: Optional[CoverArt] = None


class AudioProcessor:
    """Handler for audio file inspection."""

    @staticmethod
    def is_supported_upload(filename: str, mimetype: Optional[str] = None) -> bool:
        """
        Check if an upload looks like an MP3 file.

        Args:
            filename: Client-supplied file name
            mimetype: Client-supplied content type (optional)
        """
        if Path(filename or "").suffix.lower() not in SUPPORTED_UPLOAD_FORMATS:
            return False
        if mimetype and mimetype not in SUPPORTED_UPLOAD_MIMETYPES:
            return False
        return True

    @staticmethod
    def _parse_year(raw) -> Optional[int]:
        try:
            return int(str(raw).strip()[:4])
        except (TypeError, ValueError):
            return None

    @staticmethod
    def extract_tags(data: bytes, filename: str) -> TrackTags:
        """
        Read ID3 tags and duration from MP3 bytes using mutagen.

        Unreadable tags are not an upload failure: the file name stands in for
        the title and the other fields keep their placeholders.

        Args:
            data: MP3 file contents
            filename: Original file name, used as the title fallback

        Returns:
            TrackTags
        """
        tags = TrackTags(title=Path(filename).stem or UNKNOWN_TITLE)
        try:
            audio = MP3(io.BytesIO(data))
        except (HeaderNotFoundError, ID3NoHeaderError, MutagenError) as e:
            logger.warning(f"Failed to read tags from {filename}: {e}")
            return tags

        if audio.info and getattr(audio.info, "length", None):
            tags.duration_ms = int(round(audio.info.length * 1000))

        id3 = audio.tags
        if not id3:
            return tags

        if 'TIT2' in id3 and str(id3['TIT2']).strip():
            tags.title = str(id3['TIT2']).strip()
        if 'TPE1' in id3 and str(id3['TPE1']).strip():
            tags.artist = str(id3['TPE1']).strip()
        if 'TALB' in id3 and str(id3['TALB']).strip():
            tags.album = str(id3['TALB']).strip()

        # Year (ID3v2.4 TDRC, ID3v2.3 TYER)
        for frame in ('TDRC', 'TYER'):
            if frame in id3:
                tags.year = AudioProcessor._parse_year(id3[frame])
                if tags.year:
                    break

        # Cover art
        pictures = id3.getall('APIC')
        if pictures:
            front = next((p for p in pictures if p.type == 3), pictures[0])
            tags.cover = CoverArt(data=front.data, mime=front.mime or "image/jpeg")

        return tags
