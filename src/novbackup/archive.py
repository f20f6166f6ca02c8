from __future__ import annotations

import io
import logging
import lzma
import os
import re
import threading
import unicodedata
import zipfile
import zlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterable, Sequence

from .errors import ArchiveReadError, ConversionCancelledError

logger = logging.getLogger(__name__)

TEXT_SUFFIX = ".txt"
DEFAULT_ENCODINGS: tuple[str, ...] = ("utf-8",)
_UTF8_BOM = "\ufeff"
_NUMBER_RE = re.compile(r"(\d+)")

ArchiveSource = bytes | bytearray | str | os.PathLike | BinaryIO
ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True)
class ChapterEntry:
    name: str
    text: str


def _fold_base(text: str) -> str:
    # Case and accent insensitive: "É" compares equal to "e".
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def natural_sort_key(name: str) -> tuple[tuple[int, int, str], ...]:
    """
    Sort key that orders embedded numbers by value ("ch2" before "ch10").

    Digit runs sort before text at the same position, matching how
    numeric-aware collation places "1" ahead of "a".
    """
    parts: list[tuple[int, int, str]] = []
    # re.split with one capture group puts the digit runs at odd indexes.
    for index, piece in enumerate(_NUMBER_RE.split(name)):
        if not piece:
            continue
        if index % 2:
            parts.append((0, int(piece), ""))
        else:
            parts.append((1, 0, _fold_base(piece)))
    return tuple(parts)


def is_text_entry(info: zipfile.ZipInfo) -> bool:
    return not info.is_dir() and info.filename.lower().endswith(TEXT_SUFFIX)


def _open_archive(source: ArchiveSource) -> zipfile.ZipFile:
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(bytes(source))
    try:
        return zipfile.ZipFile(source)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as exc:
        raise ArchiveReadError(f"Could not open ZIP archive: {exc}") from exc


def _read_members(zf: zipfile.ZipFile) -> list[tuple[str, bytes]]:
    members: list[tuple[str, bytes]] = []
    for info in zf.infolist():
        if not is_text_entry(info):
            continue
        try:
            raw = zf.read(info)
        except (
            zipfile.BadZipFile,
            zlib.error,
            lzma.LZMAError,
            EOFError,
            NotImplementedError,
            RuntimeError,
            OSError,
        ) as exc:
            raise ArchiveReadError(f"Could not read {info.filename}: {exc}") from exc
        members.append((info.filename, raw))
    return members


def decode_entry(name: str, raw: bytes, encodings: Sequence[str] = DEFAULT_ENCODINGS) -> str:
    """Decode one archive entry, trying ``encodings`` in order."""
    for encoding in encodings:
        try:
            text = raw.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
        logger.debug("Decoded %s as %s", name, encoding)
        if text.startswith(_UTF8_BOM):
            text = text[len(_UTF8_BOM) :]
        return text
    tried = ", ".join(encodings) or "no encodings"
    raise ArchiveReadError(f"Could not decode {name} as text (tried {tried}).")


def sort_chapter_entries(entries: Iterable[ChapterEntry]) -> list[ChapterEntry]:
    return sorted(entries, key=lambda entry: natural_sort_key(entry.name))


def _resolve_jobs(jobs: int | None, total: int) -> int:
    if jobs is not None and jobs > 0:
        return max(1, min(jobs, total))
    return max(1, min(total, os.cpu_count() or 1))


def extract_chapters(
    source: ArchiveSource,
    *,
    encodings: Sequence[str] = DEFAULT_ENCODINGS,
    jobs: int | None = None,
    cancel_event: threading.Event | None = None,
    progress: ProgressCallback | None = None,
) -> list[ChapterEntry]:
    """
    Return every ``.txt`` entry of the archive as a decoded chapter.

    Entries are decoded concurrently and only ordered afterwards, by
    ``natural_sort_key``; that order is what the caller ranks chapters by.
    """
    with _open_archive(source) as zf:
        members = _read_members(zf)
    total = len(members)
    logger.debug("Found %d text entr%s in archive", total, "y" if total == 1 else "ies")
    if not members:
        return []

    encodings = tuple(encodings) or DEFAULT_ENCODINGS

    def _worker(member: tuple[str, bytes]) -> ChapterEntry:
        if cancel_event and cancel_event.is_set():
            raise ConversionCancelledError("Conversion cancelled.")
        name, raw = member
        return ChapterEntry(name=name, text=decode_entry(name, raw, encodings))

    entries: list[ChapterEntry] = []
    with ThreadPoolExecutor(
        max_workers=_resolve_jobs(jobs, total),
        thread_name_prefix="novbackup-decode",
    ) as executor:
        futures = [executor.submit(_worker, member) for member in members]
        try:
            for done, future in enumerate(futures, start=1):
                if cancel_event and cancel_event.is_set():
                    raise ConversionCancelledError("Conversion cancelled.")
                entry = future.result()
                entries.append(entry)
                if progress is not None:
                    progress(done, total, entry.name)
        except BaseException:
            for pending in futures:
                pending.cancel()
            raise

    return sort_chapter_entries(entries)


__all__ = [
    "ChapterEntry",
    "DEFAULT_ENCODINGS",
    "TEXT_SUFFIX",
    "decode_entry",
    "extract_chapters",
    "is_text_entry",
    "natural_sort_key",
    "sort_chapter_entries",
]
