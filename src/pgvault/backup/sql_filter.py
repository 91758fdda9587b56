"""Line-oriented filtering of plain-text dumps for partial restores.

This is a heuristic, not an SQL parser. A line whose start matches the
filter opens a statement; the following lines are kept with it until a line
ends in ``;`` (or, for ``COPY ... FROM stdin;``, until the ``\\.`` data
terminator). Known failure modes:

* dollar-quoted function bodies with a ``;`` at the end of an inner line end
  the statement early, so the rest of the body is judged as new statements;
* object names that contain a filter keyword or another object's name as a
  prefix can be matched by the wrong pattern;
* statements that do not start on their own line are not recognised.

Schema and table names are combined as a union: a statement is kept when it
matches any named schema or any named table. pg_restore combines its
``--schema`` and ``--table`` flags as an intersection instead, so the same
names select different objects from a plain dump and from an archive. Custom,
tar and directory dumps are restored with those native flags, which the
restore engine does.
"""

import re
from pathlib import Path

from pgvault.backup.exceptions import ValidationError

SCHEMA_STATEMENT_PATTERN = re.compile(
    r"^(?:CREATE|ALTER|DROP|SET|SELECT|COMMENT\s+ON)\b|^\\connect\b",
    re.IGNORECASE,
)
DATA_STATEMENT_PATTERN = re.compile(r"^(?:INSERT|UPDATE|DELETE|COPY)\b", re.IGNORECASE)

COPY_DATA_START_PATTERN = re.compile(r"\bFROM\s+stdin\s*;\s*$", re.IGNORECASE)
COPY_TERMINATOR = "\\."

_SCHEMA_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")
_TABLE_NAME = re.compile(r"^(?:[A-Za-z_][A-Za-z0-9_$]*\.)?[A-Za-z_][A-Za-z0-9_$]*$")

# Identifier end: whitespace, an opening parenthesis, a semicolon or end of line
_NAME_END = r"(?=[\s(;]|$)"
_QUALIFIER = r"(?:\"?[\w$]+\"?\.)?"


def validate_object_names(names: list[str] | None, kind: str) -> list[str]:
    """Validate schema or table names given for a scoped dump or restore.

    Args:
        names: Names to validate, ``None`` for none
        kind: ``"schema"`` or ``"table"``

    Returns:
        The names with surrounding whitespace stripped

    Raises:
        ValidationError: If a name is blank or not a plain identifier

    """
    pattern = _SCHEMA_NAME if kind == "schema" else _TABLE_NAME
    cleaned = []
    for name in names or []:
        stripped = name.strip()
        if not pattern.match(stripped):
            error_msg = f"Invalid {kind} name: {name!r}"
            raise ValidationError(error_msg)
        cleaned.append(stripped)
    return cleaned


def _quoted(name: str) -> str:
    return f"\"?{re.escape(name)}\"?"


def _schema_patterns(schema: str) -> list[str]:
    name = _quoted(schema)
    return [
        rf"^(?:CREATE|ALTER|DROP)\s+SCHEMA\s+(?:IF\s+(?:NOT\s+)?EXISTS\s+)?{name}{_NAME_END}",
        rf"^(?:CREATE|ALTER|DROP|COMMENT\s+ON)\b[\w\s]*?\s{name}\.",
        rf"^(?:COPY|INSERT\s+INTO)\s+{name}\.",
    ]


def _table_patterns(table: str) -> list[str]:
    if "." in table:
        schema, _, bare_table = table.partition(".")
        qualified = rf"{_quoted(schema)}\.{_quoted(bare_table)}"
    else:
        qualified = rf"{_QUALIFIER}{_quoted(table)}"
    return [
        rf"^(?:CREATE|ALTER|DROP)\s+TABLE\s+(?:ONLY\s+)?(?:IF\s+(?:NOT\s+)?EXISTS\s+)?"
        rf"{qualified}{_NAME_END}",
        rf"^INSERT\s+INTO\s+{qualified}{_NAME_END}",
        # pg_dump writes table data as COPY unless --inserts is used
        rf"^COPY\s+{qualified}{_NAME_END}",
    ]


def build_object_filter(
    schemas: list[str] | None,
    tables: list[str] | None,
) -> re.Pattern[str] | None:
    """Build one pattern matching statements for the named schemas and tables.

    Returns:
        Compiled pattern, or ``None`` if no names were given

    """
    patterns: list[str] = []
    for schema in schemas or []:
        patterns.extend(_schema_patterns(schema))
    for table in tables or []:
        patterns.extend(_table_patterns(table))
    if not patterns:
        return None
    return re.compile("|".join(f"(?:{p})" for p in patterns), re.IGNORECASE)


def _ends_statement(line: str) -> bool:
    return line.rstrip().endswith(";")


def filter_dump(source: Path, destination: Path, pattern: re.Pattern[str]) -> int:
    """Copy the statements of ``source`` whose first line matches ``pattern``.

    Comment and blank lines between statements are dropped.

    Returns:
        Number of statements written to ``destination``

    """
    kept = 0
    keeping = False
    is_copy = False
    in_statement = False
    in_copy_data = False

    with (
        source.open(encoding="utf-8", errors="replace") as src,
        destination.open("w", encoding="utf-8") as dst,
    ):
        for line in src:
            if in_copy_data:
                if keeping:
                    dst.write(line)
                if line.rstrip("\r\n") == COPY_TERMINATOR:
                    in_copy_data = False
                continue

            if not in_statement:
                stripped = line.lstrip()
                if not stripped.strip() or stripped.startswith("--"):
                    continue
                keeping = bool(pattern.match(stripped))
                if keeping:
                    kept += 1
                # psql meta-commands such as \connect are single-line
                if stripped.startswith("\\"):
                    if keeping:
                        dst.write(line)
                    continue
                is_copy = stripped[:5].upper() == "COPY "
                in_statement = True

            if keeping:
                dst.write(line)
            if _ends_statement(line):
                in_statement = False
                in_copy_data = is_copy and bool(COPY_DATA_START_PATTERN.search(line))

    return kept
