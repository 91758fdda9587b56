"""Best-effort metadata extraction from backup artifacts."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from pgvault.backup.catalog import BackupCatalog
from pgvault.backup.naming import ArtifactFormat, ArtifactType
from pgvault.logging import get_logger

CREATE_TABLE_PATTERN = re.compile(
    r"CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?([\w.\"]+)",
    re.IGNORECASE,
)
CREATE_SCHEMA_PATTERN = re.compile(
    r"CREATE\s+SCHEMA\s+(?:IF\s+NOT\s+EXISTS\s+)?([\w\"]+)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ArtifactMetadata:
    """Filesystem facts plus what could be recovered from the dump text."""

    name: str
    size: int
    created: datetime
    modified: datetime
    type: ArtifactType
    format: ArtifactFormat
    tables: list[str] | None = None
    schemas: list[str] | None = None
    comment: str | None = None


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def extract_leading_comment(text: str) -> str | None:
    """Return the first non-empty text of the leading ``--`` comment block."""
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if not stripped.startswith("--"):
            break
        comment = stripped.lstrip("-").strip()
        if comment:
            return comment
    return None


class MetadataExtractor:
    """Recovers table, schema and comment declarations from plain dumps.

    Only a bounded prefix of files under a size ceiling is read, so metadata
    requests cannot pull a multi-gigabyte dump into memory.
    """

    def __init__(
        self,
        catalog: BackupCatalog,
        max_file_size: int = 10 * 1024 * 1024,
        read_limit: int = 50 * 1024,
        logger: logging.Logger | None = None,
    ) -> None:
        self.catalog = catalog
        self.max_file_size = max_file_size
        self.read_limit = read_limit
        self.logger = logger or get_logger(__name__)

    def get_metadata(self, name: str) -> ArtifactMetadata:
        """Return metadata for one artifact.

        Raises:
            BackupNotFoundError: If the artifact does not exist

        """
        artifact = self.catalog.get_artifact(name)
        metadata = ArtifactMetadata(
            name=artifact.name,
            size=artifact.size,
            created=artifact.created_at,
            modified=artifact.modified_at,
            type=artifact.type,
            format=artifact.format,
        )

        if artifact.format is not ArtifactFormat.PLAIN:
            return metadata
        if artifact.size > self.max_file_size:
            self.logger.debug(
                f"Skipping content scan of {name}: {artifact.size} bytes exceeds "
                f"{self.max_file_size}",
            )
            return metadata

        try:
            with artifact.path.open("rb") as f:
                head = f.read(self.read_limit).decode("utf-8", errors="replace")
        except OSError as e:
            self.logger.warning(f"Could not read {name} for metadata: {e}")
            return metadata

        return ArtifactMetadata(
            name=metadata.name,
            size=metadata.size,
            created=metadata.created,
            modified=metadata.modified,
            type=metadata.type,
            format=metadata.format,
            tables=_unique(CREATE_TABLE_PATTERN.findall(head)),
            schemas=_unique(CREATE_SCHEMA_PATTERN.findall(head)),
            comment=extract_leading_comment(head),
        )
