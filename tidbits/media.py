"""
Media download for entries that reference a web resource.

An entry's value is treated as media when it is a web address (which
gets downloaded) or an existing local file (already in place). Anything
else is not media.
"""

import logging
from pathlib import Path
from typing import Optional

import requests

from .errors import MediaError, NotAMediaFileError
from .types import NewEntry, is_web_url

logger = logging.getLogger(__name__)


def is_media_reference(value: str) -> bool:
    """True if value is a web address or an existing local regular file."""
    if is_web_url(value):
        return True
    try:
        return Path(value).expanduser().is_file()
    except (OSError, ValueError):
        return False


def media_filename(new_entry: NewEntry) -> str:
    """``<key>.<media_type>``, or just the key without a media type."""
    media_type = new_entry.media_type.lstrip(".")
    if media_type:
        return f"{new_entry.key}.{media_type}"
    return new_entry.key


class MediaDownloader:
    """
    Fetches media resources over HTTP(S) and saves them to a directory.
    """

    def __init__(self, media_dir: Path, timeout: float = 30, max_size: int = 50_000_000):
        """
        Args:
            media_dir: Directory media files are written to (created on demand)
            timeout: Request timeout in seconds
            max_size: Maximum content size in bytes
        """
        self.media_dir = media_dir
        self.timeout = timeout
        self.max_size = max_size

    def fetch(self, url: str) -> bytes:
        """Download a resource, enforcing the size limit."""
        try:
            resp = requests.get(url, timeout=self.timeout, stream=True)
        except requests.RequestException as e:
            raise MediaError(f"unable to get web media resource {url}: {e}") from e

        with resp:
            if not resp.ok:
                raise MediaError(
                    f"unable to get web media resource {url}: {resp.status_code}"
                )

            content_length = resp.headers.get("content-length")
            if content_length:
                try:
                    if int(content_length) > self.max_size:
                        raise MediaError(f"Content too large: {content_length} bytes")
                except ValueError:
                    pass  # Malformed header, enforced via iter_content below

            chunks: list[bytes] = []
            downloaded = 0
            try:
                for chunk in resp.iter_content(chunk_size=65536):
                    downloaded += len(chunk)
                    if downloaded > self.max_size:
                        raise MediaError(f"Content too large: more than {self.max_size} bytes")
                    chunks.append(chunk)
            except requests.RequestException as e:
                raise MediaError(f"unable to read web media resource {url}: {e}") from e

        logger.debug(
            "Fetched %d bytes from %s (%s)",
            downloaded, url, resp.headers.get("content-type", "unknown"),
        )
        return b"".join(chunks)

    def save(self, new_entry: NewEntry) -> Optional[Path]:
        """
        Save the media an entry refers to.

        Returns:
            Path of the downloaded file, or None when the value is a local
            file that needs no download

        Raises:
            NotAMediaFileError: If the value is not a web address or an
                existing local file
            MediaError: If the download or the write fails
        """
        if not is_media_reference(new_entry.value):
            raise NotAMediaFileError(f"{new_entry.value!r} is not a media file")

        if not is_web_url(new_entry.value):
            return None

        try:
            self.media_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MediaError(f"unable to create media directory {self.media_dir}: {e}") from e

        content = self.fetch(new_entry.value)
        target = self.media_dir / media_filename(new_entry)
        try:
            target.write_bytes(content)
        except OSError as e:
            raise MediaError(f"unable to save media to {target}: {e}") from e

        logger.info("Saved media for %s to %s", new_entry.key, target)
        return target
