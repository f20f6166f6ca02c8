from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from .backup import BackupDocument

if TYPE_CHECKING:
    from .core import BackupResult

logger = logging.getLogger(__name__)

BACKUP_FILE_SUFFIX = ".json"
DEFAULT_BACKUP_BASENAME = "backup_from_zip"

_UNSAFE_FILENAME_CHARS_RE = re.compile(r"[^A-Za-z0-9_\-\s]")
_WHITESPACE_RUN_RE = re.compile(r"\s+")


def serialize_backup(document: BackupDocument) -> bytes:
    return json.dumps(document.as_payload(), ensure_ascii=False, indent=2).encode("utf-8")


def parse_backup(data: bytes | str) -> BackupDocument:
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    payload = json.loads(data)
    if not isinstance(payload, dict):
        raise ValueError("Backup file must contain a JSON object.")
    return BackupDocument.from_payload(payload)


def backup_filename_base(title: str) -> str:
    """
    Reduce a project title to a filesystem-safe name.

    Characters outside ``[A-Za-z0-9_-]`` and whitespace become ``_``; each
    whitespace run then collapses to a single ``_``. A title with nothing left
    but underscores falls back to ``DEFAULT_BACKUP_BASENAME``.
    """
    cleaned = _UNSAFE_FILENAME_CHARS_RE.sub("_", title)
    cleaned = _WHITESPACE_RUN_RE.sub("_", cleaned)
    if not cleaned.strip("_"):
        return DEFAULT_BACKUP_BASENAME
    return cleaned


def backup_filename(title: str) -> str:
    return f"{backup_filename_base(title)}{BACKUP_FILE_SUFFIX}"


def write_backup(result: "BackupResult", output_dir: Path, *, overwrite: bool = False) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / result.filename
    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing file: {output_path}")
    output_path.write_bytes(result.payload)
    logger.debug("Wrote %d bytes to %s", len(result.payload), output_path)
    return output_path


__all__ = [
    "BACKUP_FILE_SUFFIX",
    "DEFAULT_BACKUP_BASENAME",
    "backup_filename",
    "backup_filename_base",
    "parse_backup",
    "serialize_backup",
    "write_backup",
]
