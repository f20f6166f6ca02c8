from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

import pytest

from novbackup.backup import (
    BackupDocument,
    Scene,
    calculate_word_count,
    create_backup_structure,
    generate_unique_code,
)
from novbackup.blocks import Block, serialize_blocks
from novbackup.errors import MissingTitleError

FIXED_NOW = datetime(2024, 3, 5, 12, 30, tzinfo=timezone.utc)


def _scene(text: str, title: str = "Scene") -> Scene:
    return Scene(code="scene1", title=title, text=text, ranking=1)


def test_create_backup_structure_builds_empty_project() -> None:
    document = create_backup_structure("  My Book  ", "About it", "abc123", now=FIXED_NOW)
    payload = document.as_payload()
    millis = int(FIXED_NOW.timestamp() * 1000)

    assert payload["version"] == 4
    assert payload["code"] == "abc123"
    assert payload["title"] == "My Book"
    assert payload["description"] == "About it"
    assert payload["show_table_of_contents"] is True
    assert payload["apply_automatic_indentation"] is False
    assert payload["last_update_date"] == millis
    assert payload["last_backup_date"] == millis
    assert "cover" not in payload

    revisions = payload["revisions"]
    assert len(revisions) == 1
    revision = revisions[0]
    assert revision["number"] == 1
    assert revision["date"] == millis
    assert revision["scenes"] == []
    assert revision["sections"] == []
    assert revision["book_progresses"] == [
        {"year": 2024, "month": 3, "day": 5, "word_count": 0}
    ]
    assert revision["statuses"] == [
        {"code": "1", "title": "Todo", "color": -2697255, "ranking": 1}
    ]


def test_blank_unique_code_is_generated() -> None:
    document = create_backup_structure("Title", unique_code="   ", now=FIXED_NOW)
    assert re.fullmatch(r"[0-9a-f]{8}", document.code)


def test_generate_unique_code_is_random_hex() -> None:
    codes = {generate_unique_code() for _ in range(20)}
    assert all(re.fullmatch(r"[0-9a-f]{8}", code) for code in codes)
    assert len(codes) > 1


@pytest.mark.parametrize("title", ["", "   ", None])
def test_missing_title_is_rejected(title) -> None:
    with pytest.raises(MissingTitleError):
        create_backup_structure(title)


def test_word_count_sums_text_blocks_across_scenes() -> None:
    scenes = [
        _scene(serialize_blocks([Block(text="a b"), Block()])),
        _scene(serialize_blocks([Block(text="c")])),
    ]
    assert calculate_word_count(scenes) == 3


def test_word_count_treats_any_whitespace_as_delimiter() -> None:
    scenes = [_scene(serialize_blocks([Block(text="  one\ttwo\n three  ")]))]
    assert calculate_word_count(scenes) == 3


def test_word_count_is_zero_for_empty_blocks() -> None:
    scenes = [
        _scene(serialize_blocks([Block(text="")])),
        _scene(serialize_blocks([Block()])),
        _scene(serialize_blocks([Block(text="   ")])),
    ]
    assert calculate_word_count(scenes) == 0
    assert calculate_word_count([]) == 0


def test_word_count_ignores_non_text_blocks() -> None:
    scenes = [_scene(serialize_blocks([Block(type="image", text="alt text"), Block(text="x")]))]
    assert calculate_word_count(scenes) == 1


def test_word_count_skips_unparsable_scenes(caplog: pytest.LogCaptureFixture) -> None:
    scenes = [_scene("{broken", title="Bad"), _scene(serialize_blocks([Block(text="ok then")]))]
    with caplog.at_level(logging.WARNING, logger="novbackup.backup"):
        assert calculate_word_count(scenes) == 2
    assert "Bad" in caplog.text


def test_document_payload_round_trips_through_from_payload() -> None:
    document = create_backup_structure("Title", "Desc", "code0001", now=FIXED_NOW)
    document.current_revision.scenes.append(_scene(serialize_blocks([Block(text="hi")])))
    document.cover = "data:image/png;base64,AAAA"
    restored = BackupDocument.from_payload(document.as_payload())
    assert restored == document
