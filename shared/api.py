"""
Tuneshift API Server.
Upload, list, stream and organise pitch-shifted tracks; relay the radio feed.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from flask import Blueprint, Flask, Response, current_app, g, jsonify, request, stream_with_context
from flask_cors import CORS
from flask_socketio import SocketIO, join_room
from werkzeug.exceptions import RequestEntityTooLarge

from processing.audio import AudioProcessor
from processing.codec import FFmpegCodec
from processing.pipeline import UploadPipeline
from processing.resampler import Interpolation
from shared.auth import IdentityResolver, StaticTokenIdentity, require_user
from shared.config import ServiceConfig
from shared.constants import AUDIO_MIMETYPE, DEFAULT_PAGE_SIZE, EXPOSED_STREAM_HEADERS
from shared.database import TrackDatabase
from shared.errors import (
    CodecError,
    RangeParseError,
    StorageError,
    StorageKeyNotFound,
    TuneshiftError,
    UpstreamUnavailable,
)
from shared.radio import RadioRelay
from shared.streaming import resolve_resource, serve_resource, unsatisfiable_response
from storage.provider_factory import StorageProviderFactory
from storage.storage_provider import S3StorageProvider

logger = logging.getLogger(__name__)

socketio = SocketIO(cors_allowed_origins="*")
api = Blueprint("api", __name__)


@dataclass
class Services:
    """Long-lived collaborators shared by every request."""
    config: ServiceConfig
    storage: S3StorageProvider
    database: TrackDatabase
    identity: IdentityResolver
    pipeline: UploadPipeline
    radio: RadioRelay

    def close(self):
        self.storage.close()
        self.radio.close()


def services() -> Services:
    return current_app.extensions["tuneshift"]


def owner_room(owner: str) -> str:
    return f"user:{owner}"


def create_app(config: Optional[ServiceConfig] = None,
               storage: Optional[S3StorageProvider] = None,
               database: Optional[TrackDatabase] = None,
               identity: Optional[IdentityResolver] = None,
               codec: Optional[FFmpegCodec] = None,
               radio: Optional[RadioRelay] = None) -> Flask:
    """
    Build the Flask app with its collaborators injected.

    Anything not passed in is built from ``config`` (or the environment).
    """
    config = config or ServiceConfig.from_env()
    storage = storage or StorageProviderFactory.create(config)
    database = database or TrackDatabase(config.database_path)
    identity = identity or StaticTokenIdentity(config.api_tokens)
    codec = codec or FFmpegCodec(bitrate=config.mp3_bitrate, timeout=config.codec_timeout)
    radio = radio or RadioRelay(config.radio_sources, timeout=config.radio_timeout,
                                chunk_size=config.stream_chunk_size)
    pipeline = UploadPipeline(storage, database, codec,
                              factor=config.pitch_factor,
                              strategy=Interpolation(config.interpolation))

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.max_upload_bytes
    app.extensions["tuneshift"] = Services(
        config=config, storage=storage, database=database,
        identity=identity, pipeline=pipeline, radio=radio,
    )
    # Range headers must be allowed and exposed for cross-origin players
    CORS(app, allow_headers=["Authorization", "Range", "Content-Type"],
         expose_headers=[h.strip() for h in EXPOSED_STREAM_HEADERS.split(",")])
    app.register_blueprint(api)
    socketio.init_app(app)
    return app


# --- Error handling ---

@api.app_errorhandler(RangeParseError)
def handle_range_error(e):
    return unsatisfiable_response(e)


@api.app_errorhandler(StorageKeyNotFound)
def handle_missing_object(e):
    logger.warning(f"Missing storage object {e.key}")
    return jsonify({"error": "Audio file not found"}), 404


@api.app_errorhandler(StorageError)
def handle_storage_error(e):
    logger.error(f"Storage failure: {e}")
    return jsonify({"error": "Storage backend unavailable"}), 500


@api.app_errorhandler(CodecError)
def handle_codec_error(e):
    logger.error(f"Codec failure: {e}")
    return jsonify({"error": f"Could not process audio: {e}"}), 422


@api.app_errorhandler(UpstreamUnavailable)
def handle_upstream_error(e):
    logger.error(f"Radio unavailable: {e}")
    return jsonify({"error": "Radio stream unavailable"}), 502


@api.app_errorhandler(TuneshiftError)
def handle_service_error(e):
    logger.error(f"Unhandled service error: {e}")
    return jsonify({"error": str(e)}), e.status_code


@api.app_errorhandler(RequestEntityTooLarge)
def handle_too_large(e):
    return jsonify({"error": "File too large"}), 413


# --- Health ---

@api.route("/api/health")
def health_check():
    return jsonify({"status": "ok"})


# --- Upload ---

@api.route("/api/upload", methods=["POST"])
@require_user
def upload_audio():
    """Accept one MP3 (multipart field ``audio``) and run the processing pipeline."""
    upload = request.files.get("audio")
    if upload is None or not upload.filename:
        return jsonify({"error": "No file uploaded"}), 400
    if not AudioProcessor.is_supported_upload(upload.filename, upload.mimetype):
        return jsonify({"error": "Only MP3 files are allowed"}), 400

    data = upload.read()
    if not data:
        return jsonify({"error": "Uploaded file is empty"}), 400

    owner = g.owner
    room = owner_room(owner)

    def on_progress(progress):
        socketio.emit("upload_progress", {
            "file_name": progress.file_name,
            "stage": progress.stage,
            "percentage": progress.percentage,
        }, to=room)

    try:
        track = services().pipeline.process(owner, upload.filename, data, progress_callback=on_progress)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "message": "Audio converted and saved",
        "track": track.to_dict(),
    }), 201


@socketio.on("subscribe")
def on_subscribe(data):
    """Join the caller's owner room so upload progress reaches it."""
    token = (data or {}).get("token")
    owner = current_app.extensions["tuneshift"].identity.resolve(token) if token else None
    if not owner:
        return {"status": "unauthorized"}
    join_room(owner_room(owner))
    return {"status": "subscribed"}


# --- Tracks ---

def _owned_track_or_404(track_id: str):
    track = services().database.get_track(track_id, owner=g.owner)
    if track is None:
        return None, (jsonify({"error": "Track not found"}), 404)
    return track, None


@api.route("/api/tracks", methods=["GET"])
@require_user
def list_tracks():
    try:
        page = int(request.args.get("page", 0))
        page_size = int(request.args.get("page_size", DEFAULT_PAGE_SIZE))
    except ValueError:
        return jsonify({"error": "page and page_size must be integers"}), 400
    if page < 0 or not 0 < page_size <= 100:
        return jsonify({"error": "page must be >= 0 and page_size between 1 and 100"}), 400

    db = services().database
    tracks = db.list_tracks(g.owner, page=page, page_size=page_size)
    return jsonify({
        "tracks": [t.to_dict() for t in tracks],
        "page": page,
        "page_size": page_size,
        "total": db.count_tracks(g.owner),
    })


@api.route("/api/tracks/<track_id>", methods=["GET"])
@require_user
def get_track(track_id):
    track, error = _owned_track_or_404(track_id)
    if error:
        return error
    return jsonify(track.to_dict())


@api.route("/api/tracks/<track_id>", methods=["DELETE"])
@require_user
def delete_track(track_id):
    svc = services()
    track, error = _owned_track_or_404(track_id)
    if error:
        return error
    svc.database.delete_track(track_id, g.owner)
    svc.pipeline.remove(track)
    return jsonify({"status": "deleted", "id": track_id})


def _stream_track(track_id: str, as_attachment: bool) -> Response:
    svc = services()
    track, error = _owned_track_or_404(track_id)
    if error:
        return error
    resource = resolve_resource(svc.storage, track.storage_key, display_name=track.name,
                                content_type=AUDIO_MIMETYPE)
    extra = None
    if as_attachment:
        extra = {"Content-Disposition":
                 f"attachment; filename*=UTF-8''{quote(track.name + '.mp3', safe='')}"}
    return serve_resource(svc.storage, resource, request.headers.get("Range"),
                          chunk_size=svc.config.stream_chunk_size, extra_headers=extra)


@api.route("/api/tracks/<track_id>/stream", methods=["GET"])
@require_user
def stream_track(track_id):
    return _stream_track(track_id, as_attachment=False)


@api.route("/api/tracks/<track_id>/download", methods=["GET"])
@require_user
def download_track(track_id):
    return _stream_track(track_id, as_attachment=True)


@api.route("/api/tracks/<track_id>/cover", methods=["GET"])
@require_user
def get_track_cover(track_id):
    svc = services()
    track, error = _owned_track_or_404(track_id)
    if error:
        return error
    if not track.cover_key:
        return jsonify({"error": "Track has no cover art"}), 404
    info = svc.storage.head(track.cover_key)
    data = svc.storage.get(track.cover_key)
    return Response(data, mimetype=info.content_type or "image/jpeg")


# --- Playlists ---

@api.route("/api/playlists", methods=["GET"])
@require_user
def list_playlists():
    return jsonify([p.to_dict() for p in services().database.list_playlists(g.owner)])


@api.route("/api/playlists", methods=["POST"])
@require_user
def create_playlist():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return jsonify({"error": "Playlist name is required"}), 400
    playlist = services().database.create_playlist(g.owner, name)
    return jsonify(playlist.to_dict()), 201


@api.route("/api/playlists/<playlist_id>", methods=["GET"])
@require_user
def get_playlist(playlist_id):
    db = services().database
    playlist = db.get_playlist(playlist_id, g.owner)
    if not playlist:
        return jsonify({"error": "Playlist not found"}), 404
    tracks = [db.get_track(tid, owner=g.owner) for tid in playlist.track_ids]
    result = playlist.to_dict()
    result["tracks"] = [t.to_dict() for t in tracks if t]
    return jsonify(result)


@api.route("/api/playlists/<playlist_id>", methods=["DELETE"])
@require_user
def delete_playlist(playlist_id):
    if not services().database.delete_playlist(playlist_id, g.owner):
        return jsonify({"error": "Playlist not found"}), 404
    return jsonify({"status": "deleted", "id": playlist_id})


@api.route("/api/playlists/<playlist_id>/tracks", methods=["POST"])
@require_user
def add_track_to_playlist(playlist_id):
    data = request.get_json(silent=True) or {}
    track_id = data.get("track_id")
    if not track_id:
        return jsonify({"error": "track_id is required"}), 400
    if not services().database.add_to_playlist(playlist_id, track_id, g.owner):
        return jsonify({"error": "Playlist or track not found"}), 404
    return jsonify({"status": "added", "playlist_id": playlist_id, "track_id": track_id})


@api.route("/api/playlists/<playlist_id>/tracks/<track_id>", methods=["DELETE"])
@require_user
def remove_track_from_playlist(playlist_id, track_id):
    if not services().database.remove_from_playlist(playlist_id, track_id, g.owner):
        return jsonify({"error": "Track not in playlist"}), 404
    return jsonify({"status": "removed", "playlist_id": playlist_id, "track_id": track_id})


# --- Radio ---

@api.route("/stream", methods=["GET"])
def stream_radio():
    """Relay the live radio feed from the first reachable source."""
    relay = services().radio
    upstream = relay.open()
    content_type = upstream.headers.get("Content-Type", AUDIO_MIMETYPE)
    response = Response(stream_with_context(relay.iter_stream(upstream)), mimetype=content_type)
    response.call_on_close(upstream.close)
    response.headers["Cache-Control"] = "no-cache"
    return response


# --- Server Management ---

def start_api(config: Optional[ServiceConfig] = None, debug: bool = False):
    config = config or ServiceConfig.from_env()
    app = create_app(config)
    svc = app.extensions["tuneshift"]
    provider = StorageProviderFactory.get_provider_name(config.storage_provider)
    logger.info(f"Tuneshift API on {config.host}:{config.port} (storage: {provider}, "
                f"pitch factor {config.pitch_factor:.4f}, {config.interpolation})")
    try:
        socketio.run(app, host=config.host, port=config.port, debug=debug)
    finally:
        svc.close()
