import io

import numpy as np
import pytest

from processing.buffer import AudioBuffer
from shared.api import create_app
from shared.auth import StaticTokenIdentity
from shared.config import ServiceConfig
from shared.database import TrackDatabase
from shared.errors import CodecError
from storage.local_provider import LocalStorageProvider

TOKENS = {"alice-token": "alice", "bob-token": "bob"}
ENCODED = b"\xff\xfbENCODED-MP3" * 10


def sine(freq=440.0, sample_rate=44100, frames=4410, channels=2):
    t = np.arange(frames) / sample_rate
    wave = 0.5 * np.sin(2 * np.pi * freq * t)
    return AudioBuffer.from_channels([wave] * channels, sample_rate)


class FakeCodec:
    """Stands in for ffmpeg: decodes anything to a short sine, encodes to fixed bytes."""

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.encoded = []

    def decode(self, data, suffix=".mp3"):
        if self.fail_on == "decode":
            raise CodecError("corrupt input")
        return sine()

    def encode(self, buffer):
        if self.fail_on == "encode":
            raise CodecError("encoder crashed")
        self.encoded.append(buffer)
        return ENCODED


@pytest.fixture
def storage(tmp_path):
    return LocalStorageProvider(str(tmp_path / "objects"))


@pytest.fixture
def database(tmp_path):
    return TrackDatabase(str(tmp_path / "tracks.db"))


@pytest.fixture
def codec():
    return FakeCodec()


@pytest.fixture
def config(tmp_path):
    return ServiceConfig(
        local_storage_path=str(tmp_path / "objects"),
        database_path=str(tmp_path / "tracks.db"),
        api_tokens=dict(TOKENS),
        stream_chunk_size=100,
    )


@pytest.fixture
def app(config, storage, database, codec):
    app = create_app(config, storage=storage, database=database,
                     identity=StaticTokenIdentity(TOKENS), codec=codec)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def auth(token="alice-token"):
    return {"Authorization": f"Bearer {token}"}


def upload(client, name="song.mp3", data=b"ID3 not really an mp3", token="alice-token",
           mimetype="audio/mpeg"):
    return client.post(
        "/api/upload",
        data={"audio": (io.BytesIO(data), name, mimetype)},
        content_type="multipart/form-data",
        headers=auth(token),
    )
