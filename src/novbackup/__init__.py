from .archive import ChapterEntry, extract_chapters, natural_sort_key
from .backup import BackupDocument, calculate_word_count, create_backup_structure
from .backup_io import backup_filename, parse_backup, serialize_backup, write_backup
from .blocks import Block, parse_text_to_blocks
from .core import (
    AssembledChapters,
    BackupResult,
    ConversionOptions,
    assemble_chapters,
    zip_to_backup,
)
from .errors import (
    ArchiveReadError,
    BackupError,
    ConversionCancelledError,
    InvalidOptionError,
    MissingTitleError,
    NoChaptersError,
)

__all__ = [
    "AssembledChapters",
    "BackupDocument",
    "BackupResult",
    "Block",
    "ChapterEntry",
    "ConversionOptions",
    "assemble_chapters",
    "backup_filename",
    "calculate_word_count",
    "create_backup_structure",
    "extract_chapters",
    "natural_sort_key",
    "parse_backup",
    "parse_text_to_blocks",
    "serialize_backup",
    "write_backup",
    "zip_to_backup",
    "ArchiveReadError",
    "BackupError",
    "ConversionCancelledError",
    "InvalidOptionError",
    "MissingTitleError",
    "NoChaptersError",
]
