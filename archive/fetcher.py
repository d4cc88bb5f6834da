"""
Library Mirror - Blob Fetcher
Byte-exact downloads of covers and chapter audio.
"""

import os
import time
from pathlib import Path
from typing import Callable, Optional

import requests

from concurrency.retry import fetch_retry
from core.logger import log_detail

import config


class BlobFetcher:
    """
    Downloads a URL to bytes or to a file.

    Retryable failures (connection errors, timeouts, 5xx, 429) are retried
    with exponential backoff; whatever is left is raised as
    TransientNetworkError. Callers decide whether that is fatal.
    """

    def __init__(
        self,
        timeout: float = config.FETCH_TIMEOUT_SECONDS,
        max_retries: int = config.FETCH_MAX_RETRIES,
        http: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self._timeout = timeout
        self._http = http or requests.Session()
        self._http.headers.setdefault(
            "User-Agent",
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        )
        self._fetch = fetch_retry(
            max_retries=max_retries,
            initial_delay=config.FETCH_RETRY_INITIAL_DELAY,
            backoff_multiplier=config.FETCH_RETRY_BACKOFF_MULTIPLIER,
            sleep=sleep,
        )(self._fetch_once)

    def _fetch_once(self, url: str) -> bytes:
        response = self._http.get(url, timeout=self._timeout)
        response.raise_for_status()
        return response.content

    def fetch(self, url: str) -> bytes:
        """
        Download a URL.

        Raises:
            TransientNetworkError: If the download failed
        """
        return self._fetch(url)

    def fetch_to(self, url: str, path: Path) -> Path:
        """
        Download a URL into a file, creating parent directories.

        The file only appears once fully written.

        Raises:
            TransientNetworkError: If the download failed
            OSError: If the file could not be written
        """
        data = self.fetch(url)
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.part")
        try:
            with open(tmp_path, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except BaseException:
            if tmp_path.exists():
                tmp_path.unlink()
            raise
        log_detail(f"Saved {len(data)} bytes to {path}")
        return path

    def close(self) -> None:
        self._http.close()
