from __future__ import annotations


class BackupError(RuntimeError):
    """Base class for failures that abort a ZIP → backup conversion."""


class ArchiveReadError(BackupError):
    """Raised when the archive cannot be opened or an entry cannot be decoded."""


class NoChaptersError(BackupError):
    """Raised when neither the archive nor the extra-chapter count yields a chapter."""


class MissingTitleError(BackupError, ValueError):
    """Raised when the project title is blank."""


class InvalidOptionError(BackupError, ValueError):
    """Raised when a numeric conversion option is out of range."""


class ConversionCancelledError(BackupError):
    """Raised when a caller cancels the conversion before it completes."""


__all__ = [
    "BackupError",
    "ArchiveReadError",
    "NoChaptersError",
    "MissingTitleError",
    "InvalidOptionError",
    "ConversionCancelledError",
]
