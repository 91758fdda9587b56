"""pgvault command-line entry point."""

from pgvault.backup.cli import main

if __name__ == "__main__":
    main()
