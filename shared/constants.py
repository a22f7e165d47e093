"""
Shared constants used across the platform.
"""

# Pitch shifting
REFERENCE_PITCH_HZ = 440.0
TARGET_PITCH_HZ = 432.0
DEFAULT_PITCH_FACTOR = TARGET_PITCH_HZ / REFERENCE_PITCH_HZ  # ~0.9818
DEFAULT_INTERPOLATION = "cubic"
DEFAULT_RESAMPLE_BLOCK_SIZE = 1 << 16  # output frames per block

# Audio formats
SUPPORTED_UPLOAD_FORMATS = [".mp3"]
SUPPORTED_UPLOAD_MIMETYPES = ["audio/mpeg", "audio/mp3", "audio/x-mpeg"]
AUDIO_MIMETYPE = "audio/mpeg"

# Compression settings
DEFAULT_MP3_BITRATE = 128  # kbps
DEFAULT_CODEC_TIMEOUT = 120  # seconds per ffmpeg invocation

# Upload settings
DEFAULT_MAX_UPLOAD_MB = 50

# Storage key layout: <owner>/<folder>/<file>
ORIGINAL_FOLDER = "original"
PROCESSED_FOLDER = "processed"
COVERS_FOLDER = "covers"

# S3 Provider endpoints
CLOUDFLARE_R2_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"
BACKBLAZE_B2_ENDPOINT_TEMPLATE = "https://s3.{region}.backblazeb2.com"
AWS_S3_ENDPOINT_TEMPLATE = "https://s3.{region}.amazonaws.com"
DEFAULT_S3_POOL_CONNECTIONS = 20

# Configuration paths
DEFAULT_DATA_DIR = "~/.local/share/tuneshift"
DEFAULT_DATABASE_PATH = DEFAULT_DATA_DIR + "/tracks.db"
DEFAULT_LOCAL_STORAGE_PATH = DEFAULT_DATA_DIR + "/objects"

# Network Settings
DEFAULT_NETWORK_TIMEOUT = 30  # seconds
DEFAULT_STREAM_CHUNK_SIZE = 64 * 1024  # bytes
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5005

# Streaming
TRACK_NAME_HEADER = "X-Track-Name"
EXPOSED_STREAM_HEADERS = "Content-Range, Content-Length, Accept-Ranges, " + TRACK_NAME_HEADER

# Radio relay: one primary source plus at most two fallbacks
MAX_RADIO_FALLBACKS = 2
DEFAULT_RADIO_TIMEOUT = 10  # seconds

# Listing
DEFAULT_PAGE_SIZE = 20
