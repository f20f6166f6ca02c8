from __future__ import annotations

import argparse
import os
import sys
from importlib import metadata
from pathlib import Path

import tomllib
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .archive import DEFAULT_ENCODINGS
from .backup_io import write_backup
from .core import BackupResult, ConversionOptions, zip_to_backup
from .errors import BackupError
from .logging_utils import configure_logging

ENCODINGS_ENV = "NOVBACKUP_ENCODINGS"
JOBS_ENV = "NOVBACKUP_JOBS"


def _source_tree_version(start: Path | None = None) -> str | None:
    """Version from the nearest ``pyproject.toml`` that declares this project."""
    origin = (start or Path(__file__)).resolve()
    for directory in origin.parents:
        candidate = directory / "pyproject.toml"
        if not candidate.is_file():
            continue
        try:
            project = tomllib.loads(candidate.read_text(encoding="utf-8")).get("project", {})
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
            return None
        if project.get("name") == "novbackup":
            return project.get("version")
    return None


try:
    __version__ = metadata.version("novbackup")
except metadata.PackageNotFoundError:
    __version__ = _source_tree_version() or "0.0.0+unknown"


def _env_encodings() -> list[str]:
    raw = os.environ.get(ENCODINGS_ENV, "")
    values = [item.strip() for item in raw.split(",") if item.strip()]
    return values or list(DEFAULT_ENCODINGS)


def _env_jobs() -> int | None:
    raw = os.environ.get(JOBS_ENV, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise SystemExit(f"{JOBS_ENV} must be an integer, got {raw!r}.") from exc
    return value if value > 0 else None


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="novbackup",
        description="Create a novel backup (.json) from a ZIP of .txt chapter files.",
    )
    ap.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"novbackup {__version__}",
    )
    ap.add_argument("input_path", help="Path to the .zip archive of chapter .txt files")
    ap.add_argument("-t", "--title", required=True, help="Project title (required)")
    ap.add_argument("-d", "--description", default="", help="Project description")
    ap.add_argument(
        "--code",
        default="",
        help="Unique project code. A random code is generated when omitted.",
    )
    ap.add_argument(
        "-p",
        "--pattern",
        default="",
        help=(
            "Chapter title prefix, e.g. 'Chapter ' gives 'Chapter 1'. "
            "When empty, titles come from the .txt file names."
        ),
    )
    ap.add_argument(
        "-s",
        "--start-number",
        type=int,
        default=1,
        help="Number of the first chapter (default: 1)",
    )
    ap.add_argument(
        "-e",
        "--extra-chapters",
        type=int,
        default=0,
        help="Append this many empty chapters after the archive's chapters",
    )
    ap.add_argument(
        "-o",
        "--output-dir",
        help="Directory for the backup file (default: next to the archive)",
    )
    ap.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing backup file with the same name.",
    )
    ap.add_argument(
        "--encoding",
        dest="encodings",
        action="append",
        help=(
            "Text encoding to try when decoding chapters; repeat to add fallbacks "
            f"(default: ${ENCODINGS_ENV} or utf-8)."
        ),
    )
    ap.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help=f"Worker threads for decoding entries (default: ${JOBS_ENV} or CPU count).",
    )
    ap.add_argument("-q", "--quiet", action="store_true", help="Hide the progress bar.")
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging (entry decoding, rank assignment).",
    )
    return ap


def options_from_args(args: argparse.Namespace) -> ConversionOptions:
    jobs = args.jobs if args.jobs is not None else _env_jobs()
    return ConversionOptions(
        project_title=args.title,
        description=args.description,
        unique_code=args.code,
        chapter_pattern=args.pattern,
        start_number=args.start_number,
        extra_chapters=args.extra_chapters,
        encodings=tuple(args.encodings or _env_encodings()),
        jobs=jobs,
    )


def _convert_with_progress(
    input_path: Path,
    options: ConversionOptions,
    console: Console,
    *,
    quiet: bool,
) -> BackupResult:
    if quiet:
        return zip_to_backup(input_path, options)
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task(f"Reading {input_path.name}", total=None)

        def _on_entry(done: int, total: int, name: str) -> None:
            progress.update(
                task_id,
                completed=done,
                total=total,
                description=f"Decoded {Path(name).name}",
            )

        return zip_to_backup(input_path, options, progress=_on_entry)


def _run_create(args: argparse.Namespace, console: Console) -> int:
    input_path = Path(args.input_path).expanduser()
    if not input_path.is_file():
        raise SystemExit(f"Input ZIP not found: {input_path}")
    output_dir = (
        Path(args.output_dir).expanduser() if args.output_dir else input_path.parent
    )
    options = options_from_args(args)
    try:
        result = _convert_with_progress(input_path, options, console, quiet=args.quiet)
        output_path = write_backup(result, output_dir, overwrite=args.force)
    except (BackupError, FileExistsError) as exc:
        raise SystemExit(f"Error: {exc}") from exc
    console.print(result.summary)
    console.print(f"Saved {output_path}", markup=False, highlight=False)
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    configure_logging(bool(args.debug))
    return _run_create(args, Console())


if __name__ == "__main__":
    raise SystemExit(main())
