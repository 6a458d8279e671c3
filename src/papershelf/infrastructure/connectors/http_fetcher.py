from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests

from papershelf.domain.errors import Conflict, InvalidInput, TransportError
from papershelf.utils.logging_config import LogFiles, Logger

CHUNK_SIZE = 64 * 1024


@dataclass
class FetchResult:
    url: str
    path: Path
    size_bytes: int
    content_type: Optional[str] = None


class HttpFetcher:
    """Blocking GET that streams the response body into a new local file."""

    def __init__(self, *, timeout_s: float = 60.0, user_agent: str = "papershelf/0.3"):
        self.timeout_s = timeout_s
        self._headers = {"User-Agent": user_agent}

    def fetch(self, url: str, destination: Path) -> FetchResult:
        """
        Download ``url`` into ``destination``.

        The destination is created exclusively before the request is sent, so
        an existing file raises ``Conflict`` and is never overwritten. On any
        transport failure the partial file is removed and ``TransportError``
        raised; a destination that cannot be created or written (name too
        long, permissions, disk full) raises ``InvalidInput``.
        """
        destination = Path(destination)
        try:
            handle = open(destination, "xb")
        except FileExistsError as exc:
            raise Conflict(f"file already exists: {destination}") from exc
        except OSError as exc:
            raise InvalidInput(f"cannot create {destination}: {exc}") from exc

        size = 0
        content_type: Optional[str] = None
        try:
            with handle:
                response = requests.get(
                    url, headers=self._headers, stream=True, timeout=self.timeout_s
                )
                try:
                    response.raise_for_status()
                    content_type = response.headers.get("Content-Type")
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            handle.write(chunk)
                            size += len(chunk)
                finally:
                    response.close()
        except requests.HTTPError as exc:
            destination.unlink(missing_ok=True)
            status = exc.response.status_code if exc.response is not None else None
            Logger.error(f"GET {url} failed with HTTP {status}", file=LogFiles.INGEST)
            raise TransportError(
                f"GET {url} failed with HTTP {status}", url=url, status_code=status
            ) from exc
        except requests.RequestException as exc:
            destination.unlink(missing_ok=True)
            Logger.error(f"GET {url} failed: {exc}", file=LogFiles.INGEST)
            raise TransportError(f"GET {url} failed: {exc}", url=url) from exc
        except OSError as exc:
            destination.unlink(missing_ok=True)
            Logger.error(f"Writing {destination} failed: {exc}", file=LogFiles.INGEST)
            raise InvalidInput(f"cannot write {destination}: {exc}") from exc
        except BaseException:
            destination.unlink(missing_ok=True)
            raise

        Logger.info(f"Fetched {url} -> {destination.name} ({size} bytes)", file=LogFiles.INGEST)
        return FetchResult(url=url, path=destination, size_bytes=size, content_type=content_type)
