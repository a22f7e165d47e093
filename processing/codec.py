"""
MP3 <-> AudioBuffer conversion through the ffmpeg program.

Each call works inside its own scratch directory which is removed on every
exit path, successful or not.
"""

import json
import logging
import os
import subprocess
import tempfile
from typing import Optional, Tuple

import ffmpeg
import numpy as np

from shared.constants import DEFAULT_CODEC_TIMEOUT, DEFAULT_MP3_BITRATE
from shared.errors import CodecError
from .buffer import AudioBuffer

logger = logging.getLogger(__name__)

PCM_FORMAT = "f32le"
PCM_CODEC = "pcm_f32le"
PCM_DTYPE = np.dtype("<f4")


class FFmpegCodec:
    """
    Decode compressed audio to float PCM and encode float PCM to MP3.

    Failures of any kind (bad input, missing ffmpeg, timeouts) surface as
    ``CodecError``; no placeholder audio is ever produced.
    """

    def __init__(self, bitrate: int = DEFAULT_MP3_BITRATE,
                 timeout: float = DEFAULT_CODEC_TIMEOUT,
                 work_dir: Optional[str] = None):
        self.bitrate = bitrate
        self.timeout = timeout
        self.work_dir = work_dir

    def _scratch(self) -> tempfile.TemporaryDirectory:
        return tempfile.TemporaryDirectory(prefix="tuneshift-", dir=self.work_dir)

    def _communicate(self, process, program: str, input_bytes: Optional[bytes] = None) -> Tuple[bytes, bytes]:
        """Wait for ``process`` at most ``timeout`` seconds; non-zero exit is a CodecError."""
        try:
            stdout, stderr = process.communicate(input=input_bytes, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            raise CodecError(f"{program} timed out after {self.timeout}s")

        if process.returncode != 0:
            message = (stderr or b"").decode("utf-8", errors="replace").strip().splitlines()
            raise CodecError(f"{program} exited with {process.returncode}: {message[-1] if message else ''}")
        return stdout, stderr

    def _run(self, stream, input_bytes: Optional[bytes] = None) -> Tuple[bytes, bytes]:
        """
        Run an ffmpeg stream graph with a timeout.

        Returns:
            (stdout, stderr)
        """
        try:
            process = stream.run_async(
                pipe_stdin=input_bytes is not None,
                pipe_stdout=True,
                pipe_stderr=True,
            )
        except OSError as e:
            raise CodecError(f"Could not start ffmpeg: {e}") from e
        return self._communicate(process, "ffmpeg", input_bytes)

    def _stream_info(self, path: str) -> Tuple[int, int]:
        """
        Sample rate and channel count of the first audio stream.

        ffprobe runs under the same timeout as ffmpeg.
        """
        args = ["ffprobe", "-v", "error", "-show_streams", "-of", "json", path]
        try:
            process = subprocess.Popen(args, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            raise CodecError(f"Could not start ffprobe: {e}") from e
        stdout, _ = self._communicate(process, "ffprobe")

        try:
            info = json.loads(stdout.decode("utf-8"))
        except ValueError as e:
            raise CodecError(f"Unreadable ffprobe output: {e}") from e

        audio_streams = [s for s in info.get("streams", []) if s.get("codec_type") == "audio"]
        if not audio_streams:
            raise CodecError("Input contains no audio stream")
        stream = audio_streams[0]
        try:
            return int(stream["sample_rate"]), int(stream["channels"])
        except (KeyError, TypeError, ValueError) as e:
            raise CodecError(f"Audio stream lacks sample rate or channel count: {e}") from e

    def decode(self, data: bytes, suffix: str = ".mp3") -> AudioBuffer:
        """
        Decode compressed audio bytes.

        Args:
            data: Compressed audio (MP3 or anything ffmpeg reads)
            suffix: File extension hint for the scratch input file

        Returns:
            AudioBuffer at the input's native sample rate and channel count

        Raises:
            CodecError: If the input cannot be decoded
        """
        if not data:
            raise CodecError("Cannot decode empty input")

        with self._scratch() as scratch:
            input_path = os.path.join(scratch, "input" + suffix)
            with open(input_path, "wb") as f:
                f.write(data)

            sample_rate, channels = self._stream_info(input_path)
            stream = (
                ffmpeg
                .input(input_path)
                .output("pipe:", format=PCM_FORMAT, acodec=PCM_CODEC, ac=channels, ar=sample_rate)
                .global_args("-nostdin", "-loglevel", "error")
            )
            pcm, _ = self._run(stream)

        frames = len(pcm) // (PCM_DTYPE.itemsize * channels)
        if frames == 0:
            raise CodecError("Decoder produced no audio frames")
        interleaved = np.frombuffer(pcm, dtype=PCM_DTYPE, count=frames * channels)
        samples = interleaved.reshape(frames, channels).T
        logger.info(f"Decoded {len(data)} bytes -> {channels}ch x {frames} frames @ {sample_rate} Hz")
        return AudioBuffer(sample_rate=sample_rate, samples=samples)

    def encode(self, buffer: AudioBuffer) -> bytes:
        """
        Encode a buffer as MP3.

        Samples are clipped to [-1.0, 1.0] first.

        Raises:
            CodecError: If ffmpeg fails or produces no output
        """
        if buffer.length == 0:
            raise CodecError("Cannot encode an empty buffer")

        pcm = np.clip(buffer.interleaved(), -1.0, 1.0).astype(PCM_DTYPE).tobytes()

        with self._scratch() as scratch:
            pcm_path = os.path.join(scratch, "input.pcm")
            output_path = os.path.join(scratch, "output.mp3")
            with open(pcm_path, "wb") as f:
                f.write(pcm)

            stream = (
                ffmpeg
                .input(pcm_path, format=PCM_FORMAT, ar=buffer.sample_rate, ac=buffer.number_of_channels)
                .output(output_path, acodec="libmp3lame", audio_bitrate=f"{self.bitrate}k")
                .global_args("-nostdin", "-loglevel", "error")
                .overwrite_output()
            )
            self._run(stream)

            try:
                with open(output_path, "rb") as f:
                    encoded = f.read()
            except FileNotFoundError:
                raise CodecError("Encoder produced no output file")

        if not encoded:
            raise CodecError("Encoder produced an empty file")
        logger.info(f"Encoded {buffer.number_of_channels}ch x {buffer.length} frames -> {len(encoded)} bytes")
        return encoded
