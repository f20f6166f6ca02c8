from __future__ import annotations

import io
import struct
import threading
import zipfile
from pathlib import Path

import pytest

from novbackup.archive import (
    ChapterEntry,
    decode_entry,
    extract_chapters,
    natural_sort_key,
    sort_chapter_entries,
)
from novbackup.errors import ArchiveReadError, ConversionCancelledError


def _zip_bytes(entries: list[tuple[str, bytes | str]]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buffer.getvalue()


def test_extract_orders_names_numerically() -> None:
    data = _zip_bytes(
        [
            ("ch2.txt", "two"),
            ("ch10.txt", "ten"),
            ("ch1.txt", "one"),
        ]
    )
    chapters = extract_chapters(data)
    assert [chapter.name for chapter in chapters] == ["ch1.txt", "ch2.txt", "ch10.txt"]
    assert [chapter.text for chapter in chapters] == ["one", "two", "ten"]


def test_extract_only_takes_txt_entries_case_insensitively() -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("notes/", "")
        zf.writestr("notes/A.TXT", "upper")
        zf.writestr("cover.jpg", b"\xff\xd8\xff")
        zf.writestr("readme.md", "# nope")
        zf.writestr("b.txt", "lower")
        zf.writestr("b.txt.bak", "backup")
    chapters = extract_chapters(buffer.getvalue())
    assert [chapter.name for chapter in chapters] == ["b.txt", "notes/A.TXT"]


def test_extract_accepts_path_and_file_object(tmp_path: Path) -> None:
    archive_path = tmp_path / "chapters.zip"
    archive_path.write_bytes(_zip_bytes([("a.txt", "Alpha")]))
    assert extract_chapters(archive_path) == [ChapterEntry(name="a.txt", text="Alpha")]
    with archive_path.open("rb") as fh:
        assert extract_chapters(fh) == [ChapterEntry(name="a.txt", text="Alpha")]


def test_extract_empty_archive_returns_no_chapters() -> None:
    assert extract_chapters(_zip_bytes([])) == []


def test_extract_strips_utf8_bom() -> None:
    data = _zip_bytes([("a.txt", "\ufeffHello".encode("utf-8"))])
    assert extract_chapters(data)[0].text == "Hello"


def test_corrupt_archive_raises_archive_read_error() -> None:
    with pytest.raises(ArchiveReadError):
        extract_chapters(b"this is not a zip file")


def _corrupt_deflated_member(name: str, text: str) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(name, text)
        header_offset = zf.getinfo(name).header_offset
    data = bytearray(buffer.getvalue())
    name_length, extra_length = struct.unpack_from("<HH", data, header_offset + 26)
    start = header_offset + 30 + name_length + extra_length
    for index in range(start, start + 20):
        data[index] ^= 0xFF
    return bytes(data)


def test_corrupt_member_data_raises_archive_read_error() -> None:
    data = _corrupt_deflated_member("a.txt", "All work and no play. " * 200)
    with pytest.raises(ArchiveReadError) as excinfo:
        extract_chapters(data)
    assert "a.txt" in str(excinfo.value)


def test_missing_archive_path_raises_archive_read_error(tmp_path: Path) -> None:
    with pytest.raises(ArchiveReadError):
        extract_chapters(tmp_path / "missing.zip")


def test_undecodable_entry_aborts_extraction() -> None:
    data = _zip_bytes([("good.txt", "fine"), ("bad.txt", b"\xff\xfe\xfa broken")])
    with pytest.raises(ArchiveReadError) as excinfo:
        extract_chapters(data)
    assert "bad.txt" in str(excinfo.value)


def test_fallback_encoding_is_used_when_configured() -> None:
    data = _zip_bytes([("latin.txt", "café".encode("cp1252"))])
    chapters = extract_chapters(data, encodings=("utf-8", "cp1252"))
    assert chapters[0].text == "café"


def test_decode_entry_skips_unknown_codecs() -> None:
    assert decode_entry("a.txt", b"abc", ("no-such-codec", "ascii")) == "abc"


def test_progress_reports_every_entry() -> None:
    data = _zip_bytes([(f"c{i}.txt", str(i)) for i in range(5)])
    calls: list[tuple[int, int, str]] = []
    extract_chapters(data, jobs=2, progress=lambda done, total, name: calls.append((done, total, name)))
    assert [done for done, _, _ in calls] == [1, 2, 3, 4, 5]
    assert {total for _, total, _ in calls} == {5}


def test_cancelled_extraction_raises() -> None:
    cancel_event = threading.Event()
    cancel_event.set()
    data = _zip_bytes([("a.txt", "x"), ("b.txt", "y")])
    with pytest.raises(ConversionCancelledError):
        extract_chapters(data, cancel_event=cancel_event)


def test_natural_sort_key_ignores_case_and_accents() -> None:
    assert natural_sort_key("Chapter2.txt") == natural_sort_key("chapter2.TXT")
    assert natural_sort_key("été.txt") == natural_sort_key("ete.txt")
    assert natural_sort_key("ch9.txt") < natural_sort_key("ch10.txt")
    assert natural_sort_key("1.txt") < natural_sort_key("a.txt")


def test_sort_is_stable_for_equal_keys() -> None:
    entries = [
        ChapterEntry(name="B.txt", text="first"),
        ChapterEntry(name="a.txt", text="a"),
        ChapterEntry(name="b.txt", text="second"),
    ]
    ordered = sort_chapter_entries(entries)
    assert [entry.text for entry in ordered] == ["a", "first", "second"]


def test_sort_ignores_decode_completion_order() -> None:
    names = [f"part{i}.txt" for i in (12, 3, 1, 20, 2)]
    data = _zip_bytes([(name, name) for name in names])
    chapters = extract_chapters(data, jobs=4)
    assert [chapter.name for chapter in chapters] == [
        "part1.txt",
        "part2.txt",
        "part3.txt",
        "part12.txt",
        "part20.txt",
    ]


def test_sort_handles_non_decimal_digit_characters() -> None:
    entries = [ChapterEntry(name="a.txt", text="y"), ChapterEntry(name="1²2.txt", text="x")]
    ordered = sort_chapter_entries(entries)
    assert [entry.name for entry in ordered] == ["1²2.txt", "a.txt"]
    assert natural_sort_key("Part²") == natural_sort_key("part²")
