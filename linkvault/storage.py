import logging
import os
import re
import time

from .errors import UploadTooLarge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,16}$")


class FileStore:
    """Upload payloads on local disk, one file per share."""

    def __init__(self, upload_dir: str, max_size_bytes: int):
        self.upload_dir = os.path.abspath(upload_dir)
        self.max_size_bytes = max_size_bytes

    def ensure_dir(self):
        os.makedirs(self.upload_dir, exist_ok=True)

    def stored_name_for(self, token: str, original_name: str) -> str:
        ext = os.path.splitext(os.path.basename(original_name or ""))[1]
        if not SAFE_EXTENSION.match(ext):
            ext = ""
        return f"{int(time.time() * 1000)}-{token}{ext.lower()}"

    def save(self, stream, stored_name: str):
        """Copy ``stream`` to disk in chunks and return ``(path, size)``.

        Oversized uploads are removed before ``UploadTooLarge`` is raised, so a
        failed save never leaves a partial file behind.
        """
        self.ensure_dir()
        file_path = os.path.join(self.upload_dir, stored_name)
        if os.path.dirname(os.path.abspath(file_path)) != self.upload_dir:
            raise ValueError(f"Refusing to write outside the upload directory: {stored_name}")

        size = 0
        try:
            with open(file_path, "wb") as f:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_size_bytes:
                        raise UploadTooLarge("File too large.")
                    f.write(chunk)
        except BaseException:
            self.remove(file_path)
            raise
        return file_path, size

    def exists(self, file_path: str) -> bool:
        return bool(file_path) and os.path.isfile(file_path)

    def remove(self, file_path: str) -> bool:
        """Best-effort delete. Missing files are fine, other failures are logged."""
        if not file_path:
            return False
        try:
            os.remove(file_path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Could not remove stored file {file_path}: {e}")
            return False
