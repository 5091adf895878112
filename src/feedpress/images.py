"""Featured-image storage.

The pipeline only needs "store this source image, get back a durable
URL". :class:`LocalImageStore` downloads into a directory served under
a base URL; :class:`PassthroughImageStore` keeps the source URL.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from feedpress.config import ImagesSectionConfig

logger = logging.getLogger(__name__)

_USER_AGENT = "Mozilla/5.0 (compatible; feedpress/0.1)"
_MAX_IMAGE_BYTES = 10 * 1024 * 1024
_KNOWN_SUFFIXES = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".svg"})


class ImageStore(ABC):
    @abstractmethod
    def store(self, source_url: str) -> str:
        """Persist the image at *source_url* and return its durable URL.

        Raises:
            OSError: If the image cannot be fetched or written.
        """


class PassthroughImageStore(ImageStore):
    """Uses source image URLs as-is."""

    def store(self, source_url: str) -> str:
        return source_url


class LocalImageStore(ImageStore):
    """Downloads images into a local directory, one file per source URL."""

    def __init__(self, directory: Path, *, base_url: str = "", timeout: int = 15) -> None:
        self._directory = Path(directory)
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def store(self, source_url: str) -> str:
        request = Request(source_url, headers={"User-Agent": _USER_AGENT})  # noqa: S310
        with urlopen(request, timeout=self._timeout) as response:  # noqa: S310
            content_type = response.headers.get_content_type()
            if not content_type.startswith("image/"):
                raise OSError(f"Not an image: {content_type}")
            data = response.read(_MAX_IMAGE_BYTES + 1)
        if len(data) > _MAX_IMAGE_BYTES:
            raise OSError(f"Image too large: {source_url}")

        filename = self._filename(source_url, content_type)
        path = self._directory / filename
        if not path.exists():
            self._directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            logger.info("Stored image %s as %s", source_url, path)

        if self._base_url:
            return f"{self._base_url}/{filename}"
        return path.resolve().as_uri()

    @staticmethod
    def _filename(source_url: str, content_type: str) -> str:
        digest = hashlib.sha256(source_url.encode("utf-8")).hexdigest()[:24]
        suffix = Path(urlparse(source_url).path).suffix.lower()
        if suffix not in _KNOWN_SUFFIXES:
            suffix = mimetypes.guess_extension(content_type) or ".img"
        return f"{digest}{suffix}"


def create_image_store(config: ImagesSectionConfig) -> ImageStore:
    if config.is_configured:
        return LocalImageStore(
            Path(config.directory).expanduser(),
            base_url=config.base_url,
            timeout=config.timeout,
        )
    return PassthroughImageStore()


def resolve_featured_image(
    image_store: ImageStore,
    candidates: list[str],
    fallback_url: str = "",
) -> str:
    """Store the first usable candidate image, else return *fallback_url*."""
    for candidate in candidates:
        if not candidate:
            continue
        try:
            return image_store.store(candidate)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to store image %s: %s", candidate, exc)
    return fallback_url
