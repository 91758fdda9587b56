"""Backup filename conventions.

An artifact's provenance (type) and physical encoding (format) are encoded in
its filename only: ``<type>-backup-<timestamp><extension>``. Renaming a file
changes how it is classified. Everything here is free of I/O.
"""

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pgvault.backup.exceptions import CatalogError, ValidationError


class ArtifactType(Enum):
    """Provenance of a backup artifact."""

    MANUAL = "manual"
    AUTO = "auto"
    PRE_RESTORE = "pre-restore"
    IMPORTED = "imported"
    UNKNOWN = "unknown"


class ArtifactFormat(Enum):
    """Physical encoding of a backup artifact."""

    PLAIN = "plain"
    CUSTOM = "custom"
    DIRECTORY = "directory"
    TAR = "tar"
    COMPRESSED = "compressed"
    UNKNOWN = "unknown"


# Longest suffix first so ".dir.zip" is not taken for a plain ".zip"
EXTENSION_FORMATS: tuple[tuple[str, ArtifactFormat], ...] = (
    (".dir.zip", ArtifactFormat.DIRECTORY),
    (".sql", ArtifactFormat.PLAIN),
    (".dump", ArtifactFormat.CUSTOM),
    (".dir", ArtifactFormat.DIRECTORY),
    (".tar", ArtifactFormat.TAR),
    (".zip", ArtifactFormat.COMPRESSED),
)

SUPPORTED_EXTENSIONS = (".sql", ".dump", ".dir", ".tar", ".zip")

# pg_dump -F flag and the extension written for each dumpable format
DUMP_FORMAT_FLAGS: dict[ArtifactFormat, tuple[str, str]] = {
    ArtifactFormat.PLAIN: ("p", ".sql"),
    ArtifactFormat.CUSTOM: ("c", ".dump"),
    ArtifactFormat.DIRECTORY: ("d", ".dir"),
    ArtifactFormat.TAR: ("t", ".tar"),
}

_KNOWN_TYPES = sorted(
    (t for t in ArtifactType if t is not ArtifactType.UNKNOWN),
    key=lambda t: len(t.value),
    reverse=True,
)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_SAFE_PREFIX = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")

MAX_NAME_ATTEMPTS = 1000


@dataclass(frozen=True)
class Classification:
    """Type and format derived from a filename."""

    type: ArtifactType
    format: ArtifactFormat


def classify_type(filename: str) -> ArtifactType:
    """Return the artifact type encoded in the filename prefix."""
    for artifact_type in _KNOWN_TYPES:
        if filename.startswith(f"{artifact_type.value}-"):
            return artifact_type
    return ArtifactType.UNKNOWN


def classify_format(filename: str) -> ArtifactFormat:
    """Return the artifact format encoded in the filename extension."""
    lowered = filename.lower()
    for extension, artifact_format in EXTENSION_FORMATS:
        if lowered.endswith(extension):
            return artifact_format
    return ArtifactFormat.UNKNOWN


def classify(filename: str) -> Classification:
    """Classify a backup filename into its type and format."""
    return Classification(type=classify_type(filename), format=classify_format(filename))


def artifact_extension(filename: str) -> str | None:
    """Return the supported extension of ``filename`` (``.dir.zip`` included)."""
    lowered = filename.lower()
    for extension, _ in EXTENSION_FORMATS:
        if lowered.endswith(extension):
            return extension
    return None


def is_supported(filename: str) -> bool:
    """Whether the filename carries one of the supported backup extensions."""
    return artifact_extension(filename) is not None


def validate_artifact_name(name: str) -> str:
    """Reject names that could escape the backup directory.

    Raises:
        ValidationError: If the name is empty, contains path separators or
            starts with a dot

    """
    if not name or Path(name).name != name or not _SAFE_NAME.match(name):
        error_msg = f"Invalid backup name: {name!r}"
        raise ValidationError(error_msg)
    return name


def validate_name_prefix(prefix: str) -> str:
    """Reject prefixes that are not a single plain name component.

    Raises:
        ValidationError: If the prefix is empty or holds separators, dots or spaces

    """
    if not prefix or not _SAFE_PREFIX.match(prefix):
        error_msg = f"Invalid backup name prefix: {prefix!r}"
        raise ValidationError(error_msg)
    return prefix


def format_timestamp(moment: datetime) -> str:
    """Millisecond timestamp with colons and the fractional dot replaced."""
    moment = moment.astimezone(UTC)
    return f"{moment.strftime('%Y-%m-%dT%H-%M-%S')}-{moment.microsecond // 1000:03d}Z"


def generate_backup_name(
    prefix: str,
    extension: str,
    directory: Path | None = None,
    clock: Callable[[], datetime] | None = None,
) -> str:
    """Generate ``<prefix>-backup-<timestamp><extension>``.

    When ``directory`` is given and the name is already taken there, waits for
    the next millisecond so generated names stay unique. A ``.dir`` name also
    counts as taken when its ``.dir.zip`` archive exists.

    Raises:
        ValidationError: If the prefix is not a plain name component
        CatalogError: If no free name is found after ``MAX_NAME_ATTEMPTS`` tries

    """
    validate_name_prefix(prefix)
    now = clock or (lambda: datetime.now(UTC))

    for _ in range(MAX_NAME_ATTEMPTS):
        name = f"{prefix}-backup-{format_timestamp(now())}{extension}"
        if directory is None or not _name_taken(directory, name):
            return name
        time.sleep(0.001)

    error_msg = (
        f"Could not generate a unique backup name for prefix '{prefix}' "
        f"after {MAX_NAME_ATTEMPTS} attempts"
    )
    raise CatalogError(error_msg)


def _name_taken(directory: Path, name: str) -> bool:
    if (directory / name).exists():
        return True
    return name.endswith(".dir") and (directory / f"{name}.zip").exists()
