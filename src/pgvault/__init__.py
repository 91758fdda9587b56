"""pgvault - PostgreSQL Backup Management Library.

A Python library for creating, cataloguing, restoring, importing and pruning
logical PostgreSQL backups, with scheduled backups and retention cleanup.
"""

__version__ = "0.1.0"
__author__ = "pgvault Team"
__email__ = "pgvault@example.com"

from . import exceptions, logging

__all__ = ["exceptions", "logging"]
