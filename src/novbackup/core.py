from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Sequence

from .archive import (
    DEFAULT_ENCODINGS,
    ArchiveSource,
    ChapterEntry,
    ProgressCallback,
    extract_chapters,
)
from .backup import (
    DEFAULT_SCENE_STATUS,
    BackupDocument,
    Scene,
    Section,
    SectionScene,
    calculate_word_count,
    create_backup_structure,
)
from .backup_io import backup_filename, serialize_backup
from .blocks import Block, empty_blocks, parse_text_to_blocks, serialize_blocks
from .errors import (
    ConversionCancelledError,
    InvalidOptionError,
    MissingTitleError,
    NoChaptersError,
)

logger = logging.getLogger(__name__)

SCENE_CODE_PREFIX = "scene"
SECTION_CODE_PREFIX = "section"
SYNTHETIC_TITLE_PREFIX = "Chapter "
_TEXT_SUFFIX_RE = re.compile(r"\.txt$", re.IGNORECASE)


@dataclass
class ConversionOptions:
    """Everything the caller decides about a ZIP → backup conversion."""

    project_title: str
    description: str = ""
    unique_code: str = ""
    chapter_pattern: str = ""
    start_number: int = 1
    extra_chapters: int = 0
    encodings: tuple[str, ...] = DEFAULT_ENCODINGS
    jobs: int | None = None

    def __post_init__(self) -> None:
        self.project_title = (self.project_title or "").strip()
        self.description = (self.description or "").strip()
        self.unique_code = (self.unique_code or "").strip()
        self.chapter_pattern = self.chapter_pattern or ""
        self.encodings = tuple(self.encodings) or DEFAULT_ENCODINGS

    def validate(self) -> None:
        if not self.project_title:
            raise MissingTitleError("Project Title is required.")
        for label, value in (
            ("Project Title", self.project_title),
            ("Description", self.description),
            ("Unique Code", self.unique_code),
            ("Chapter Pattern", self.chapter_pattern),
        ):
            _validate_encodable(label, value)
        _validate_numbering(self.start_number, self.extra_chapters)


@dataclass
class AssembledChapters:
    scenes: list[Scene] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.scenes)


@dataclass
class BackupResult:
    payload: bytes
    filename: str
    chapter_count: int
    document: BackupDocument

    @property
    def summary(self) -> str:
        return f"Backup file created with {self.chapter_count} chapter(s)."


def _validate_numbering(start_number: int, extra_chapters: int) -> None:
    if isinstance(start_number, bool) or not isinstance(start_number, int) or start_number < 1:
        raise InvalidOptionError("Start Number must be 1 or greater.")
    if isinstance(extra_chapters, bool) or not isinstance(extra_chapters, int) or extra_chapters < 0:
        raise InvalidOptionError("Extra Chapters must be 0 or greater.")


def _validate_encodable(label: str, value: str) -> None:
    # Undecodable argv bytes arrive as lone surrogates, which UTF-8 cannot carry.
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise InvalidOptionError(f"{label} is not valid UTF-8 text.") from exc


def chapter_title_from_name(name: str) -> str:
    return _TEXT_SUFFIX_RE.sub("", name)


def _chapter_pair(rank: int, title: str, blocks: Sequence[Block]) -> tuple[Scene, Section]:
    scene_code = f"{SCENE_CODE_PREFIX}{rank}"
    scene = Scene(
        code=scene_code,
        title=title,
        text=serialize_blocks(blocks),
        ranking=rank,
        status=DEFAULT_SCENE_STATUS,
    )
    section = Section(
        code=f"{SECTION_CODE_PREFIX}{rank}",
        title=title,
        ranking=rank,
        section_scenes=[SectionScene(code=scene_code, ranking=1)],
    )
    return scene, section


def _append_archive_chapters(
    index: int,
    entries: Iterable[ChapterEntry],
    assembled: AssembledChapters,
    *,
    chapter_pattern: str,
    start_number: int,
) -> int:
    for entry in entries:
        rank = start_number + index
        if chapter_pattern:
            title = f"{chapter_pattern}{rank}"
        else:
            title = chapter_title_from_name(entry.name)
        scene, section = _chapter_pair(rank, title, parse_text_to_blocks(entry.text))
        assembled.scenes.append(scene)
        assembled.sections.append(section)
        logger.debug("Assigned rank %d to %s", rank, entry.name)
        index += 1
    return index


def _append_empty_chapters(
    index: int,
    count: int,
    assembled: AssembledChapters,
    *,
    chapter_pattern: str,
    start_number: int,
) -> int:
    for _ in range(count):
        rank = start_number + index
        # Empty patterns fall back to "Chapter N" here, not to a file name.
        prefix = chapter_pattern or SYNTHETIC_TITLE_PREFIX
        scene, section = _chapter_pair(rank, f"{prefix}{rank}", empty_blocks())
        assembled.scenes.append(scene)
        assembled.sections.append(section)
        index += 1
    return index


def assemble_chapters(
    entries: Iterable[ChapterEntry],
    *,
    chapter_pattern: str = "",
    start_number: int = 1,
    extra_chapters: int = 0,
) -> AssembledChapters:
    """
    Turn ordered chapter entries into paired scene and section records.

    Archive chapters are ranked first, in the order given, starting at
    ``start_number``; ``extra_chapters`` empty chapters follow with the next
    ranks. Raises ``NoChaptersError`` when the result would be empty.
    """
    _validate_numbering(start_number, extra_chapters)
    assembled = AssembledChapters()
    index = _append_archive_chapters(
        0,
        entries,
        assembled,
        chapter_pattern=chapter_pattern,
        start_number=start_number,
    )
    index = _append_empty_chapters(
        index,
        extra_chapters,
        assembled,
        chapter_pattern=chapter_pattern,
        start_number=start_number,
    )
    if index == 0:
        raise NoChaptersError(
            "No .txt files found in ZIP and no extra chapters requested. Backup not created."
        )
    return assembled


def build_backup_document(
    assembled: AssembledChapters,
    options: ConversionOptions,
    *,
    now: datetime | None = None,
) -> BackupDocument:
    document = create_backup_structure(
        options.project_title,
        options.description,
        options.unique_code,
        now=now,
    )
    revision = document.current_revision
    revision.scenes = list(assembled.scenes)
    revision.sections = list(assembled.sections)
    revision.book_progresses[0].word_count = calculate_word_count(revision.scenes)
    return document


def zip_to_backup(
    source: ArchiveSource,
    options: ConversionOptions,
    *,
    now: datetime | None = None,
    cancel_event: threading.Event | None = None,
    progress: ProgressCallback | None = None,
) -> BackupResult:
    """
    Convert a ZIP of ``.txt`` chapters into a serialized backup file.

    Either the whole conversion succeeds or an exception propagates; no
    partial result is ever returned.
    """
    options.validate()
    entries = extract_chapters(
        source,
        encodings=options.encodings,
        jobs=options.jobs,
        cancel_event=cancel_event,
        progress=progress,
    )
    if cancel_event and cancel_event.is_set():
        raise ConversionCancelledError("Conversion cancelled.")
    assembled = assemble_chapters(
        entries,
        chapter_pattern=options.chapter_pattern,
        start_number=options.start_number,
        extra_chapters=options.extra_chapters,
    )
    document = build_backup_document(assembled, options, now=now)
    result = BackupResult(
        payload=serialize_backup(document),
        filename=backup_filename(options.project_title),
        chapter_count=assembled.count,
        document=document,
    )
    logger.info(
        "Built backup %s with %d chapter(s), %d word(s)",
        result.filename,
        result.chapter_count,
        document.current_revision.book_progresses[0].word_count,
    )
    return result


__all__ = [
    "AssembledChapters",
    "BackupResult",
    "ConversionOptions",
    "assemble_chapters",
    "build_backup_document",
    "chapter_title_from_name",
    "zip_to_backup",
]
