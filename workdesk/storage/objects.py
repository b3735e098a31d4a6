"""
Object storage for uploaded documents.

Objects are keyed by client/task/file name:

    sanitize(client_name)/sanitize(task_title)/file_name

Uploading a second file with the same name under the same task replaces
the first. Private objects are handed out through short-lived signed links
that force a download with the original file name.
"""

import hashlib
import hmac
import logging
import time
from pathlib import Path, PurePosixPath
from typing import Callable
from urllib.parse import parse_qs, quote, urlencode, urlsplit, unquote

from workdesk.lib.constants import PATH_SEGMENT_UNSAFE, REPEATED_UNDERSCORES
from workdesk.lib.errors import StorageFailure, ValidationFailed

logger = logging.getLogger(__name__)

DEFAULT_SIGNED_URL_TTL = 60


def sanitize(segment: str) -> str:
    """Replace characters outside [a-zA-Z0-9_-] with '_' and collapse runs of '_'."""
    return REPEATED_UNDERSCORES.sub("_", PATH_SEGMENT_UNSAFE.sub("_", segment))


def object_path(client_name: str, task_title: str, file_name: str) -> str:
    """Build the storage key for a task document."""
    name = PurePosixPath(file_name.replace("\\", "/")).name
    if not name or name in (".", ".."):
        raise ValidationFailed(f"invalid file name '{file_name}'", field="file_name")
    return f"{sanitize(client_name)}/{sanitize(task_title)}/{name}"


class LocalObjectStorage:
    """Objects stored as files under a root directory.

    Args:
        root: Directory holding the objects
        base_url: Public prefix for links
        secret: Key for signing links
        clock: Returns current epoch seconds
    """

    def __init__(
        self,
        root: Path,
        base_url: str,
        secret: str,
        clock: Callable[[], float] = time.time,
    ):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self._secret = secret.encode()
        self._clock = clock

    def _file(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise StorageFailure(f"object path escapes storage root: {path}")
        return target

    def upload(self, path: str, data: bytes) -> str:
        """Store data at path, replacing any existing object."""
        target = self._file(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageFailure(f"upload of {path} failed: {e}") from e
        logger.debug(f"[STORAGE] uploaded {path} ({len(data)} bytes)")
        return path

    def exists(self, path: str) -> bool:
        return self._file(path).is_file()

    def read(self, path: str) -> bytes:
        try:
            return self._file(path).read_bytes()
        except OSError as e:
            raise StorageFailure(f"read of {path} failed: {e}") from e

    def remove(self, path: str) -> None:
        try:
            self._file(path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageFailure(f"removal of {path} failed: {e}") from e

    def public_url(self, path: str) -> str:
        """Unsigned direct reference to an object."""
        return f"{self.base_url}/{quote(path)}"

    def _signature(self, path: str, expires: int, download: str) -> str:
        message = f"{path}\n{expires}\n{download}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def create_signed_url(
        self,
        path: str,
        expires_in: int = DEFAULT_SIGNED_URL_TTL,
        download: str | None = None,
    ) -> str:
        """Signed link valid for expires_in seconds.

        download sets the file name for a forced-download disposition.

        Raises:
            StorageFailure: If the object doesn't exist
        """
        if not self.exists(path):
            raise StorageFailure(f"cannot sign link for missing object {path}")
        expires = int(self._clock()) + expires_in
        download = download or PurePosixPath(path).name
        query = urlencode({
            "expires": expires,
            "download": download,
            "token": self._signature(path, expires, download),
        })
        return f"{self.public_url(path)}?{query}"

    def verify_signed_url(self, url: str) -> str:
        """Check a signed link and return the object path it grants.

        Raises:
            StorageFailure: If the link is malformed, tampered with or expired
        """
        parts = urlsplit(url)
        prefix = urlsplit(self.base_url).path.rstrip("/") + "/"
        if not parts.path.startswith(prefix):
            raise StorageFailure("link does not belong to this storage")
        path = unquote(parts.path[len(prefix):])
        params = {k: v[0] for k, v in parse_qs(parts.query).items()}
        try:
            expires = int(params["expires"])
            download = params["download"]
            token = params["token"]
        except (KeyError, ValueError):
            raise StorageFailure("malformed signed link") from None

        if not hmac.compare_digest(token, self._signature(path, expires, download)):
            raise StorageFailure("invalid link signature")
        if self._clock() > expires:
            raise StorageFailure("signed link expired")
        return path
