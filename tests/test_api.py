import pytest

from shared.api import socketio
from shared.auth import StaticTokenIdentity

from conftest import ENCODED, auth, upload
from test_database import make_track


@pytest.fixture
def track_id(client):
    response = upload(client, name="Morning.mp3")
    assert response.status_code == 201
    return response.get_json()["track"]["id"]


def test_health(client):
    assert client.get("/api/health").get_json() == {"status": "ok"}


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "Basic abc"}])
def test_requests_without_valid_token_are_rejected(client, headers):
    response = client.get("/api/tracks", headers=headers)
    assert response.status_code == 401
    assert "error" in response.get_json()


def test_token_query_parameter_is_accepted(client):
    assert client.get("/api/tracks?token=alice-token").status_code == 200


def test_static_identity():
    identity = StaticTokenIdentity({"t1": "alice"})
    assert identity.resolve("t1") == "alice"
    assert identity.resolve("t2") is None
    assert identity.resolve("") is None


def test_upload_creates_track(client, storage):
    response = upload(client, name="Morning.mp3", data=b"mp3 payload")
    assert response.status_code == 201
    body = response.get_json()
    assert body["message"] == "Audio converted and saved"
    track = body["track"]
    assert track["owner"] == "alice"
    assert track["name"] == "Morning"
    assert track["storage_key"] == f"alice/processed/{track['id']}/Morning.mp3"
    assert storage.get(track["original_key"]) == b"mp3 payload"


def test_upload_requires_file(client):
    response = client.post("/api/upload", data={}, content_type="multipart/form-data", headers=auth())
    assert response.status_code == 400


def test_upload_rejects_non_mp3(client):
    assert upload(client, name="song.wav", mimetype="audio/wav").status_code == 400
    assert upload(client, name="song.mp3", mimetype="text/plain").status_code == 400


def test_upload_rejects_empty_file(client):
    assert upload(client, data=b"").status_code == 400


def test_upload_codec_failure_is_422(client, codec, storage):
    codec.fail_on = "decode"
    response = upload(client, name="broken.mp3")
    assert response.status_code == 422
    assert not any(p.is_file() for p in (storage._bucket_root() / "alice").rglob("*"))


def test_list_tracks_paginates(client):
    for i in range(3):
        upload(client, name=f"song{i}.mp3")
    response = client.get("/api/tracks?page=0&page_size=2", headers=auth())
    body = response.get_json()
    assert response.status_code == 200
    assert len(body["tracks"]) == 2
    assert body["total"] == 3
    assert body["page_size"] == 2
    second = client.get("/api/tracks?page=1&page_size=2", headers=auth()).get_json()
    assert len(second["tracks"]) == 1


@pytest.mark.parametrize("query", ["page=-1", "page_size=0", "page_size=101", "page=x"])
def test_list_tracks_rejects_bad_paging(client, query):
    assert client.get(f"/api/tracks?{query}", headers=auth()).status_code == 400


def test_tracks_are_private_to_their_owner(client, track_id):
    assert client.get(f"/api/tracks/{track_id}", headers=auth()).status_code == 200
    assert client.get(f"/api/tracks/{track_id}", headers=auth("bob-token")).status_code == 404
    assert client.get(f"/api/tracks/{track_id}/stream", headers=auth("bob-token")).status_code == 404
    assert client.delete(f"/api/tracks/{track_id}", headers=auth("bob-token")).status_code == 404
    assert client.get("/api/tracks", headers=auth("bob-token")).get_json()["total"] == 0


def test_stream_track_with_range(client, track_id):
    response = client.get(f"/api/tracks/{track_id}/stream", headers={**auth(), "Range": "bytes=0-9"})
    assert response.status_code == 206
    assert response.headers["Content-Range"] == f"bytes 0-9/{len(ENCODED)}"
    assert response.headers["X-Track-Name"] == "Morning"
    assert response.data == ENCODED[:10]


def test_stream_track_whole(client, track_id):
    response = client.get(f"/api/tracks/{track_id}/stream?token=alice-token")
    assert response.status_code == 200
    assert response.headers["Accept-Ranges"] == "bytes"
    assert response.data == ENCODED


def test_stream_track_bad_range(client, track_id):
    response = client.get(f"/api/tracks/{track_id}/stream",
                          headers={**auth(), "Range": f"bytes={len(ENCODED)}-"})
    assert response.status_code == 416
    assert response.headers["Content-Range"] == f"bytes */{len(ENCODED)}"


def test_stream_track_with_missing_object(client, track_id, storage, database):
    storage.delete(database.get_track(track_id).storage_key)
    response = client.get(f"/api/tracks/{track_id}/stream", headers=auth())
    assert response.status_code == 404
    assert response.get_json() == {"error": "Audio file not found"}


def test_download_sets_attachment(client, track_id):
    response = client.get(f"/api/tracks/{track_id}/download", headers=auth())
    assert response.status_code == 200
    assert response.headers["Content-Disposition"] == "attachment; filename*=UTF-8''Morning.mp3"
    assert response.data == ENCODED


def test_cover_missing(client, track_id):
    assert client.get(f"/api/tracks/{track_id}/cover", headers=auth()).status_code == 404


def test_delete_track_removes_objects(client, track_id, storage, database):
    track = database.get_track(track_id)
    response = client.delete(f"/api/tracks/{track_id}", headers=auth())
    assert response.status_code == 200
    assert not storage.exists(track.storage_key)
    assert not storage.exists(track.original_key)
    assert client.get(f"/api/tracks/{track_id}", headers=auth()).status_code == 404


def test_deleting_one_of_two_same_name_uploads_keeps_the_other(client):
    first = upload(client, name="song.mp3").get_json()["track"]["id"]
    second = upload(client, name="song.mp3").get_json()["track"]["id"]
    assert first != second

    assert client.delete(f"/api/tracks/{second}", headers=auth()).status_code == 200
    response = client.get(f"/api/tracks/{first}/stream", headers=auth())
    assert response.status_code == 200
    assert response.data == ENCODED


def test_download_filename_is_fully_percent_encoded(client, storage, database):
    track = make_track(name="Don't Stop; Live, Café")
    database.add_track(track)
    storage.put(track.storage_key, ENCODED, "audio/mpeg")

    response = client.get(f"/api/tracks/{track.id}/download", headers=auth())
    assert response.status_code == 200
    assert response.headers["Content-Disposition"] == (
        "attachment; filename*=UTF-8''Don%27t%20Stop%3B%20Live%2C%20Caf%C3%A9.mp3"
    )


def test_playlist_endpoints(client, track_id):
    assert client.post("/api/playlists", json={}, headers=auth()).status_code == 400

    created = client.post("/api/playlists", json={"name": "Focus"}, headers=auth())
    assert created.status_code == 201
    playlist_id = created.get_json()["id"]

    added = client.post(f"/api/playlists/{playlist_id}/tracks", json={"track_id": track_id}, headers=auth())
    assert added.status_code == 200

    playlist = client.get(f"/api/playlists/{playlist_id}", headers=auth()).get_json()
    assert playlist["track_ids"] == [track_id]
    assert playlist["tracks"][0]["name"] == "Morning"
    assert [p["id"] for p in client.get("/api/playlists", headers=auth()).get_json()] == [playlist_id]

    assert client.get(f"/api/playlists/{playlist_id}", headers=auth("bob-token")).status_code == 404
    assert client.post(f"/api/playlists/{playlist_id}/tracks", json={"track_id": "nope"},
                       headers=auth()).status_code == 404

    removed = client.delete(f"/api/playlists/{playlist_id}/tracks/{track_id}", headers=auth())
    assert removed.status_code == 200
    assert client.delete(f"/api/playlists/{playlist_id}", headers=auth()).status_code == 200
    assert client.delete(f"/api/playlists/{playlist_id}", headers=auth()).status_code == 404


def test_cors_exposes_range_headers(client):
    response = client.get("/api/health", headers={"Origin": "http://player.example"})
    exposed = response.headers["Access-Control-Expose-Headers"]
    assert "Content-Range" in exposed
    assert "X-Track-Name" in exposed


def test_upload_progress_reaches_subscribed_owner(app, client):
    alice = socketio.test_client(app)
    bob = socketio.test_client(app)
    assert alice.emit("subscribe", {"token": "alice-token"}, callback=True) == {"status": "subscribed"}
    assert bob.emit("subscribe", {"token": "bob-token"}, callback=True) == {"status": "subscribed"}

    upload(client)

    stages = [e["args"][0]["stage"] for e in alice.get_received() if e["name"] == "upload_progress"]
    assert stages[0] == "storing_original"
    assert stages[-1] == "done"
    assert bob.get_received() == []


def test_subscribe_requires_valid_token(app):
    sio = socketio.test_client(app)
    assert sio.emit("subscribe", {"token": "wrong"}, callback=True) == {"status": "unauthorized"}
