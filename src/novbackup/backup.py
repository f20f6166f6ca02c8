from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping
from uuid import uuid4

from .blocks import BLOCK_TYPE_TEXT, deserialize_blocks
from .errors import MissingTitleError

logger = logging.getLogger(__name__)

BACKUP_FORMAT_VERSION = 4
DEFAULT_SCENE_STATUS = "1"
_DEFAULT_STATUS_TITLE = "Todo"
_DEFAULT_STATUS_COLOR = -2697255


def _str_field(payload: Mapping[str, object], key: str, default: str = "") -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else default


def _int_field(payload: Mapping[str, object], key: str, default: int = 0) -> int:
    value = payload.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return default


def _bool_field(payload: Mapping[str, object], key: str, default: bool) -> bool:
    value = payload.get(key)
    return value if isinstance(value, bool) else default


def _mapping_items(value: object) -> list[Mapping[str, object]]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, Mapping)]


@dataclass
class Scene:
    code: str
    title: str
    text: str
    ranking: int
    status: str = DEFAULT_SCENE_STATUS

    def as_payload(self) -> dict[str, object]:
        return {
            "code": self.code,
            "title": self.title,
            "text": self.text,
            "ranking": self.ranking,
            "status": self.status,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "Scene":
        return cls(
            code=_str_field(payload, "code"),
            title=_str_field(payload, "title"),
            text=_str_field(payload, "text"),
            ranking=_int_field(payload, "ranking"),
            status=_str_field(payload, "status", DEFAULT_SCENE_STATUS),
        )


@dataclass
class SectionScene:
    code: str
    ranking: int = 1

    def as_payload(self) -> dict[str, object]:
        return {"code": self.code, "ranking": self.ranking}

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "SectionScene":
        return cls(
            code=_str_field(payload, "code"),
            ranking=_int_field(payload, "ranking", 1),
        )


@dataclass
class Section:
    code: str
    title: str
    ranking: int
    section_scenes: list[SectionScene]
    synopsis: str = ""

    def as_payload(self) -> dict[str, object]:
        return {
            "code": self.code,
            "title": self.title,
            "synopsis": self.synopsis,
            "ranking": self.ranking,
            "section_scenes": [entry.as_payload() for entry in self.section_scenes],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "Section":
        return cls(
            code=_str_field(payload, "code"),
            title=_str_field(payload, "title"),
            ranking=_int_field(payload, "ranking"),
            section_scenes=[
                SectionScene.from_payload(entry)
                for entry in _mapping_items(payload.get("section_scenes"))
            ],
            synopsis=_str_field(payload, "synopsis"),
        )


@dataclass
class BookProgress:
    year: int
    month: int
    day: int
    word_count: int = 0

    def as_payload(self) -> dict[str, int]:
        return {
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "word_count": self.word_count,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "BookProgress":
        return cls(
            year=_int_field(payload, "year"),
            month=_int_field(payload, "month"),
            day=_int_field(payload, "day"),
            word_count=_int_field(payload, "word_count"),
        )


@dataclass
class Status:
    code: str
    title: str
    color: int
    ranking: int

    def as_payload(self) -> dict[str, object]:
        return {
            "code": self.code,
            "title": self.title,
            "color": self.color,
            "ranking": self.ranking,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "Status":
        return cls(
            code=_str_field(payload, "code"),
            title=_str_field(payload, "title"),
            color=_int_field(payload, "color"),
            ranking=_int_field(payload, "ranking"),
        )


def default_statuses() -> list[Status]:
    return [
        Status(
            code=DEFAULT_SCENE_STATUS,
            title=_DEFAULT_STATUS_TITLE,
            color=_DEFAULT_STATUS_COLOR,
            ranking=1,
        )
    ]


@dataclass
class Revision:
    number: int
    date: int
    book_progresses: list[BookProgress]
    statuses: list[Status] = field(default_factory=default_statuses)
    scenes: list[Scene] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)

    def as_payload(self) -> dict[str, object]:
        return {
            "number": self.number,
            "date": self.date,
            "book_progresses": [entry.as_payload() for entry in self.book_progresses],
            "statuses": [entry.as_payload() for entry in self.statuses],
            "scenes": [entry.as_payload() for entry in self.scenes],
            "sections": [entry.as_payload() for entry in self.sections],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "Revision":
        return cls(
            number=_int_field(payload, "number", 1),
            date=_int_field(payload, "date"),
            book_progresses=[
                BookProgress.from_payload(entry)
                for entry in _mapping_items(payload.get("book_progresses"))
            ],
            statuses=[
                Status.from_payload(entry)
                for entry in _mapping_items(payload.get("statuses"))
            ],
            scenes=[
                Scene.from_payload(entry)
                for entry in _mapping_items(payload.get("scenes"))
            ],
            sections=[
                Section.from_payload(entry)
                for entry in _mapping_items(payload.get("sections"))
            ],
        )


@dataclass
class BackupDocument:
    """Top-level backup envelope as the writing app imports it."""

    code: str
    title: str
    description: str
    last_update_date: int
    last_backup_date: int
    revisions: list[Revision]
    version: int = BACKUP_FORMAT_VERSION
    show_table_of_contents: bool = True
    apply_automatic_indentation: bool = False
    cover: str | None = None

    @property
    def current_revision(self) -> Revision:
        return self.revisions[0]

    def as_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "version": self.version,
            "code": self.code,
            "title": self.title,
            "description": self.description,
        }
        if self.cover is not None:
            payload["cover"] = self.cover
        payload.update(
            {
                "show_table_of_contents": self.show_table_of_contents,
                "apply_automatic_indentation": self.apply_automatic_indentation,
                "last_update_date": self.last_update_date,
                "last_backup_date": self.last_backup_date,
                "revisions": [revision.as_payload() for revision in self.revisions],
            }
        )
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "BackupDocument":
        cover = payload.get("cover")
        return cls(
            version=_int_field(payload, "version", BACKUP_FORMAT_VERSION),
            code=_str_field(payload, "code"),
            title=_str_field(payload, "title"),
            description=_str_field(payload, "description"),
            cover=cover if isinstance(cover, str) else None,
            show_table_of_contents=_bool_field(payload, "show_table_of_contents", True),
            apply_automatic_indentation=_bool_field(
                payload, "apply_automatic_indentation", False
            ),
            last_update_date=_int_field(payload, "last_update_date"),
            last_backup_date=_int_field(payload, "last_backup_date"),
            revisions=[
                Revision.from_payload(entry)
                for entry in _mapping_items(payload.get("revisions"))
            ],
        )


def generate_unique_code() -> str:
    """Return a random 8-digit lowercase hex project code."""
    return uuid4().hex[:8]


def _epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def create_backup_structure(
    title: str,
    description: str = "",
    unique_code: str | None = None,
    *,
    now: datetime | None = None,
) -> BackupDocument:
    """
    Build the empty-project envelope: one revision, no scenes or sections,
    and a progress record for ``now`` with a zero word count.
    """
    clean_title = (title or "").strip()
    if not clean_title:
        raise MissingTitleError("Project Title is required.")
    code = (unique_code or "").strip() or generate_unique_code()
    moment = now or datetime.now().astimezone()
    timestamp = _epoch_millis(moment)
    progress = BookProgress(
        year=moment.year,
        month=moment.month,
        day=moment.day,
        word_count=0,
    )
    return BackupDocument(
        code=code,
        title=clean_title,
        description=description or "",
        last_update_date=timestamp,
        last_backup_date=timestamp,
        revisions=[Revision(number=1, date=timestamp, book_progresses=[progress])],
    )


def calculate_word_count(scenes: Iterable[Scene]) -> int:
    total = 0
    for scene in scenes:
        try:
            blocks = deserialize_blocks(scene.text)
        except ValueError as exc:
            logger.warning("Skipping word count for scene %r: %s", scene.title, exc)
            continue
        for block in blocks:
            if block.type != BLOCK_TYPE_TEXT or block.text is None:
                continue
            total += len(block.text.split())
    return total


__all__ = [
    "BACKUP_FORMAT_VERSION",
    "DEFAULT_SCENE_STATUS",
    "BackupDocument",
    "BookProgress",
    "Revision",
    "Scene",
    "Section",
    "SectionScene",
    "Status",
    "calculate_word_count",
    "create_backup_structure",
    "default_statuses",
    "generate_unique_code",
]
