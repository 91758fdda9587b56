"""Runner for the external pg_dump, pg_restore and psql commands."""

import logging
import subprocess
from pathlib import Path

from pgvault.backup.exceptions import ProcessFailedError

MAX_STDERR_CHARS = 2000


class ProcessRunner:
    """Executes commands with proper error handling and logging."""

    def __init__(
        self,
        logger: logging.Logger,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            logger: Logger instance for logging operations
            env: Environment for child processes (carries PGPASSWORD)
            timeout: Seconds before a command is killed, ``None`` for no limit

        """
        self.logger = logger
        self.env = env
        self.timeout = timeout

    def run(
        self,
        command: list[str],
        input_text: str | None = None,
        stdin_path: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run ``command`` and return the completed process.

        Args:
            command: Command and arguments, never passed through a shell
            input_text: Text fed to the command's stdin
            stdin_path: File fed to the command's stdin

        Raises:
            ProcessFailedError: On a non-zero exit code, a spawn error or a timeout

        """
        self.logger.debug(f"Running command: {' '.join(command)}")

        try:
            if stdin_path is not None:
                with stdin_path.open("rb") as stdin_file:
                    result = subprocess.run(  # noqa: S603
                        command,
                        stdin=stdin_file,
                        capture_output=True,
                        env=self.env,
                        timeout=self.timeout,
                        check=False,
                    )
                returncode = result.returncode
                stdout = result.stdout.decode("utf-8", errors="replace")
                stderr = result.stderr.decode("utf-8", errors="replace")
            else:
                text_result = subprocess.run(  # noqa: S603
                    command,
                    input=input_text,
                    capture_output=True,
                    text=True,
                    env=self.env,
                    timeout=self.timeout,
                    check=False,
                )
                returncode = text_result.returncode
                stdout = text_result.stdout or ""
                stderr = text_result.stderr or ""
        except subprocess.TimeoutExpired as e:
            error_msg = f"Command timed out after {self.timeout} seconds: {command[0]}"
            self.logger.error(error_msg)
            raise ProcessFailedError(error_msg, command=command, original_error=e) from e
        except (OSError, subprocess.SubprocessError) as e:
            error_msg = f"Failed to start command {command[0]}: {e}"
            self.logger.error(error_msg)
            raise ProcessFailedError(error_msg, command=command, original_error=e) from e

        if returncode != 0:
            stderr_excerpt = stderr.strip()[:MAX_STDERR_CHARS] or "No stderr output"
            error_msg = (
                f"Command {command[0]} returned non-zero exit code {returncode}: "
                f"{stderr_excerpt}"
            )
            self.logger.error(error_msg)
            raise ProcessFailedError(
                error_msg,
                command=command,
                returncode=returncode,
                stderr=stderr,
            )

        if stderr.strip():
            self.logger.debug(f"{command[0]} stderr: {stderr.strip()[:MAX_STDERR_CHARS]}")

        return subprocess.CompletedProcess(command, returncode, stdout, stderr)
