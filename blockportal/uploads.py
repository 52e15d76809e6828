import os
import secrets
import time
from dataclasses import dataclass


@dataclass(frozen=True)
class Upload:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return extension(self.filename)

    @property
    def stem(self) -> str:
        return os.path.splitext(os.path.basename(self.filename))[0]


def extension(filename: str) -> str:
    _, ext = os.path.splitext(filename or "")
    return ext.lstrip(".").lower()


def unique_name(ext: str) -> str:
    """``{epoch_ms}-{random}.{ext}``, the naming used for every bucket."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}.{ext}"


def from_file_storage(fs) -> Upload | None:
    """Convert a werkzeug FileStorage from a form; None when nothing was chosen."""
    if fs is None or not fs.filename:
        return None
    data = fs.read()
    if not data:
        return None
    return Upload(filename=fs.filename, content_type=fs.mimetype or "application/octet-stream", data=data)
