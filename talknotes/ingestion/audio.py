"""Local storage for uploaded session audio."""

from __future__ import annotations

import base64
import binascii
import logging
import re
import uuid
from pathlib import Path

from talknotes.errors import InvalidRequestError

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads/"
AUDIO_SUBDIR = "audio"
DEFAULT_EXTENSION = ".m4a"

_MIME_EXTENSIONS = {
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/m4a": ".m4a",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/aac": ".aac",
}
_SAFE_EXTENSION = re.compile(r"^\.[a-z0-9]{1,5}$")
_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+/-]+)?(;[\w=-]+)*;base64,", re.IGNORECASE)


def pick_extension(file_name: str | None, mime_type: str | None) -> str:
    """Choose a file extension from the upload's name, then its mime type."""
    suffix = Path(file_name or "").suffix.lower()
    if _SAFE_EXTENSION.match(suffix):
        return suffix
    return _MIME_EXTENSIONS.get((mime_type or "").lower(), DEFAULT_EXTENSION)


class LocalAudioStore:
    """Save base64 uploads under ``<upload_dir>/audio`` and resolve references.

    Stored files are referenced as ``/uploads/audio/<name>``.  Any other
    reference (a remote URL, say) does not resolve to a local file.
    """

    def __init__(self, upload_dir: str | Path) -> None:
        self.upload_dir = Path(upload_dir)

    def save_base64(
        self,
        session_id: str,
        audio_base64: str,
        file_name: str | None = None,
        mime_type: str | None = None,
    ) -> str:
        match = _DATA_URL.match(audio_base64)
        payload = audio_base64
        if match:
            payload = audio_base64[match.end():]
            mime_type = mime_type or match.group("mime")
        try:
            data = base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise InvalidRequestError("audio_base64 is not valid base64") from exc
        if not data:
            raise InvalidRequestError("audio_base64 decoded to an empty file")

        name = f"session_{session_id}_{uuid.uuid4().hex}{pick_extension(file_name, mime_type)}"
        target_dir = self.upload_dir / AUDIO_SUBDIR
        target_dir.mkdir(parents=True, exist_ok=True)
        (target_dir / name).write_bytes(data)
        logger.info("Stored %d bytes of audio for session %s as %s", len(data), session_id, name)
        return f"{URL_PREFIX}{AUDIO_SUBDIR}/{name}"

    def resolve(self, file_url: str | None) -> Path | None:
        """Map a stored reference to an existing local file, or ``None``."""
        if not file_url or not file_url.startswith(URL_PREFIX):
            return None
        relative = Path(file_url[len(URL_PREFIX):])
        if relative.is_absolute() or ".." in relative.parts:
            return None
        path = self.upload_dir / relative
        return path if path.is_file() else None

    def discard(self, file_url: str | None) -> None:
        """Delete a stored upload; references that do not resolve are ignored."""
        path = self.resolve(file_url)
        if path is not None:
            path.unlink(missing_ok=True)
            logger.info("Discarded unused upload %s", file_url)
