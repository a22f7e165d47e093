"""
Upload pipeline: store the original, pitch-shift it, store the result and
record the track.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Optional

from shared.constants import (
    AUDIO_MIMETYPE,
    COVERS_FOLDER,
    DEFAULT_PITCH_FACTOR,
    ORIGINAL_FOLDER,
    PROCESSED_FOLDER,
)
from shared.database import TrackDatabase
from shared.errors import CodecError, StorageError
from shared.models import Track
from storage.storage_provider import S3StorageProvider
from .audio import AudioProcessor
from .codec import FFmpegCodec
from .resampler import Interpolation, shift

logger = logging.getLogger(__name__)

STAGES = ("storing_original", "reading_tags", "decoding", "shifting", "encoding",
          "storing_processed", "recording", "done")


@dataclass
class UploadProgress:
    """Progress information for one upload."""
    file_name: str
    stage: str

    @property
    def percentage(self) -> float:
        return (STAGES.index(self.stage) + 1) / len(STAGES) * 100

    def __str__(self) -> str:
        return f"{self.file_name}: {self.stage} ({self.percentage:.0f}%)"


def object_key(owner: str, folder: str, track_id: str, filename: str) -> str:
    return f"{owner}/{folder}/{track_id}/{filename}"


def safe_filename(filename: str) -> str:
    """Last path component of a client-supplied name, stripped of separators."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name.strip()
    if name in ("", ".", ".."):
        raise ValueError("Invalid file name")
    return name


class UploadPipeline:
    """
    Turns an uploaded MP3 into a stored, pitch-shifted track.

    Storage, database and codec are injected so the same instance serves
    every request.
    """

    def __init__(self, storage: S3StorageProvider, database: TrackDatabase,
                 codec: Optional[FFmpegCodec] = None,
                 factor: float = DEFAULT_PITCH_FACTOR,
                 strategy: Interpolation = Interpolation.CUBIC):
        self.storage = storage
        self.database = database
        self.codec = codec or FFmpegCodec()
        self.factor = factor
        self.strategy = Interpolation(strategy)

    def process(self, owner: str, filename: str, data: bytes,
                progress_callback: Optional[Callable[[UploadProgress], None]] = None) -> Track:
        """
        Execute the upload process for one file.

        Args:
            owner: Identity of the uploading user
            filename: Client-supplied file name
            data: MP3 contents
            progress_callback: Called as each stage starts

        Returns:
            The recorded Track

        Raises:
            ValueError: Empty data or unusable file name
            CodecError: The audio could not be decoded or encoded
            StorageError: A storage read or write failed
            sqlite3.Error: The track could not be recorded

        Objects already stored for this upload are removed before any of
        these errors propagate. Keys are <owner>/<folder>/<track id>/<file>.
        """
        if not data:
            raise ValueError("Uploaded file is empty")
        name = safe_filename(filename)

        def report(stage):
            if progress_callback:
                progress_callback(UploadProgress(file_name=name, stage=stage))

        track_id = Track.generate_id()
        original_key = object_key(owner, ORIGINAL_FOLDER, track_id, name)
        processed_key = object_key(owner, PROCESSED_FOLDER, track_id, name)
        stored_keys = []

        try:
            report("storing_original")
            self.storage.put(original_key, data, AUDIO_MIMETYPE)
            stored_keys.append(original_key)

            report("reading_tags")
            tags = AudioProcessor.extract_tags(data, name)
            cover_key = None
            if tags.cover:
                cover_key = object_key(
                    owner, COVERS_FOLDER, track_id,
                    f"{PurePosixPath(name).stem}.{tags.cover.extension}",
                )
                self.storage.put(cover_key, tags.cover.data, tags.cover.mime)
                stored_keys.append(cover_key)

            report("decoding")
            decoded = self.codec.decode(data)

            report("shifting")
            shifted = shift(decoded, self.factor, self.strategy)

            report("encoding")
            processed = self.codec.encode(shifted)

            report("storing_processed")
            self.storage.put(processed_key, processed, AUDIO_MIMETYPE)
            stored_keys.append(processed_key)

            report("recording")
            duration_ms = tags.duration_ms or int(round(decoded.duration * 1000))
            track = Track(
                id=track_id,
                owner=owner,
                name=tags.title,
                artist=tags.artist,
                album=tags.album,
                year=tags.year,
                duration_ms=duration_ms,
                storage_key=processed_key,
                original_key=original_key,
                cover_key=cover_key,
                file_size=len(processed),
                pitch_factor=self.factor,
            )
            self.database.add_track(track)
        except (CodecError, StorageError, sqlite3.Error) as e:
            logger.error(f"Upload {track_id} ({name}) failed: {e}; removing stored objects")
            self._discard(stored_keys)
            raise

        report("done")
        logger.info(f"Processed {name} for {owner}: {len(data)} -> {len(processed)} bytes")
        return track

    def _discard(self, keys):
        for key in keys:
            try:
                self.storage.delete(key)
            except StorageError as e:
                logger.warning(f"Could not remove {key}: {e}")

    def remove(self, track: Track) -> None:
        """Delete a track's stored objects (processed, original, cover)."""
        self._discard([k for k in (track.storage_key, track.original_key, track.cover_key) if k])
