from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from papershelf.domain.errors import InvalidInput


_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]")
_ARXIV_ID_RE = re.compile(
    r"(?P<id>(?:\d{4}\.\d{4,5})(?:v\d+)?|[a-z\-]+(?:\.[A-Z]{2})?/\d{7}(?:v\d+)?)",
    re.IGNORECASE,
)
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")

# Most filesystems cap a single path component at 255 bytes.
MAX_FILENAME_LENGTH = 200
_MAX_SUFFIX_LENGTH = 16


class SourceKind(str, Enum):
    URL = "url"
    PATH = "path"


@dataclass(frozen=True)
class Source:
    """A user-supplied ingestion source, classified."""

    kind: SourceKind
    raw: str
    url: Optional[str] = None
    path: Optional[Path] = None

    @property
    def is_url(self) -> bool:
        return self.kind is SourceKind.URL


def resolve_source(value: str) -> Source:
    """
    Classify ``value`` as a remote URL or a filesystem path.

    ``http``/``https`` are URLs, ``file://`` is turned into a path, any other
    scheme is rejected and everything that does not look like a URL is a path.
    """
    text = str(value or "").strip()
    if not text:
        raise InvalidInput("source must not be empty")

    if not _SCHEME_RE.match(text):
        return Source(kind=SourceKind.PATH, raw=text, path=Path(text).expanduser())

    parsed = urlparse(text)
    scheme = parsed.scheme.lower()
    if scheme in ("http", "https"):
        if not parsed.netloc:
            raise InvalidInput(f"url has no host: {text}")
        return Source(kind=SourceKind.URL, raw=text, url=text)
    if scheme == "file":
        if parsed.netloc not in ("", "localhost"):
            raise InvalidInput(f"file url must point to the local host: {text}")
        return Source(kind=SourceKind.PATH, raw=text, path=Path(url2pathname(parsed.path)))
    raise InvalidInput(f"unsupported url scheme {scheme!r}: {text}")


def sanitize_filename(name: str) -> str:
    cleaned = _UNSAFE_CHARS_RE.sub("_", str(name or "").strip())
    return cleaned.lstrip(".")


def truncate_filename(name: str, limit: int = MAX_FILENAME_LENGTH) -> str:
    """Shorten ``name`` to ``limit`` characters, keeping a short extension."""
    if len(name) <= limit:
        return name
    stem, dot, suffix = name.rpartition(".")
    if dot and stem and len(suffix) <= _MAX_SUFFIX_LENGTH:
        return f"{stem[: limit - len(suffix) - 1]}.{suffix}"
    return name[:limit]


def is_arxiv_url(url: str) -> bool:
    parsed = urlparse(url or "")
    host = parsed.netloc.lower()
    if not host.endswith("arxiv.org"):
        return False
    path = parsed.path.lower()
    if not (path.startswith("/abs/") or path.startswith("/pdf/")):
        return False
    return _ARXIV_ID_RE.search(parsed.path) is not None


def filename_for_url(url: str, name: Optional[str] = None) -> str:
    """
    Derive the stored filename for a fetched URL.

    An explicit ``name`` wins. Otherwise the last non-empty path segment is
    percent-decoded and reduced to ``[A-Za-z0-9._-]``; if that leaves nothing,
    the host is used. arXiv abs/pdf links always end in ``.pdf``. Names longer
    than ``MAX_FILENAME_LENGTH`` are shortened, keeping the extension.
    """
    if name is not None and str(name).strip():
        explicit = sanitize_filename(Path(str(name).strip()).name)
        if not explicit:
            raise InvalidInput(f"invalid file name: {name!r}")
        return truncate_filename(explicit)

    parsed = urlparse(url)
    segments = [seg for seg in parsed.path.split("/") if seg]
    candidate = sanitize_filename(unquote(segments[-1])) if segments else ""
    if not candidate:
        candidate = sanitize_filename(parsed.netloc.replace(".", "_").replace(":", "_"))
    if not candidate:
        raise InvalidInput(f"cannot derive a file name from url: {url}")

    if is_arxiv_url(url) and not candidate.lower().endswith(".pdf"):
        candidate = f"{candidate}.pdf"
    return truncate_filename(candidate)
