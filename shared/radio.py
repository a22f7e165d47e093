"""
Relay of an upstream live audio feed.

The primary source is tried first, then up to two fallbacks, each with its
own timeout. The first source that answers with a 2xx status is relayed.
"""

import logging
from typing import Iterator, List, Optional

import requests

from shared.constants import DEFAULT_RADIO_TIMEOUT, DEFAULT_STREAM_CHUNK_SIZE, MAX_RADIO_FALLBACKS
from shared.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class RadioRelay:
    """Opens the first reachable upstream feed out of a short ordered list."""

    def __init__(self, sources: List[str], timeout: float = DEFAULT_RADIO_TIMEOUT,
                 chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE,
                 session: Optional[requests.Session] = None):
        if len(sources) > MAX_RADIO_FALLBACKS + 1:
            raise ValueError(f"At most {MAX_RADIO_FALLBACKS} fallback sources are supported")
        self.sources = list(sources)
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.session = session or requests.Session()

    @property
    def is_available(self) -> bool:
        return bool(self.sources)

    def open(self) -> requests.Response:
        """
        Connect to the first source that responds.

        Returns:
            Streaming response; the caller must close it

        Raises:
            UpstreamUnavailable: If every source failed
        """
        failures = []
        for attempt, url in enumerate(self.sources):
            try:
                response = self.session.get(url, stream=True, timeout=self.timeout)
            except requests.RequestException as e:
                logger.warning(f"Radio source {attempt + 1}/{len(self.sources)} unreachable ({url}): {e}")
                failures.append(f"{url}: {e}")
                continue
            if not response.ok:
                logger.warning(f"Radio source {url} answered {response.status_code}")
                failures.append(f"{url}: HTTP {response.status_code}")
                response.close()
                continue
            if attempt:
                logger.info(f"Using fallback radio source {url}")
            return response

        if not self.sources:
            raise UpstreamUnavailable("No radio sources configured")
        raise UpstreamUnavailable("All radio sources failed: " + "; ".join(failures))

    def iter_stream(self, response: requests.Response) -> Iterator[bytes]:
        """Yield feed chunks, closing the upstream connection on every exit path."""
        try:
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                if chunk:
                    yield chunk
        except requests.RequestException as e:
            logger.error(f"Radio upstream dropped: {e}")
            raise
        finally:
            response.close()

    def close(self):
        self.session.close()
