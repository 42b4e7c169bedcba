"""Audit Logger - append-only record of vault operations.

One line per operation:

    2026-01-31T12:00:00.000000Z [4242] OK GET github/alice
    2026-01-31T12:00:05.000000Z [4243] DENIED SEARCH git/- wrong-password

Targets are credential keys or ids, never secrets. The log rotates daily to
``access.log.YYYYMMDD`` and rotated files older than the retention period
are removed.
"""

import os
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

# Results
OK = "OK"
DENIED = "DENIED"
ERROR = "ERROR"

ROTATED_DATE_FORMAT = "%Y%m%d"


def _escape(text: str, keep_spaces: bool = False) -> str:
    """Escape control and whitespace characters so one event stays one line and one field."""
    escaped = []
    for c in text:
        if c == " ":
            escaped.append(" " if keep_spaces else r"\x20")
        elif c.isprintable() and not c.isspace():
            escaped.append(c)
        else:
            escaped.append(c.encode("unicode_escape").decode("ascii"))
    return "".join(escaped)


class AuditLogger:
    """Append-only audit log with daily rotation and retention."""

    def __init__(self, log_path: Path, retention_days: int = 30):
        """Initialize audit logger.

        Args:
            log_path: Path to the log file (e.g., ~/.strongbox/access.log)
            retention_days: Number of days to keep rotated logs

        """
        self.log_path = Path(log_path)
        self.retention_days = retention_days
        self._rotated_on: Optional[str] = None
        self.lock = threading.Lock()

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_path.parent.chmod(0o700)

        self._create_log_file()

    def _create_log_file(self) -> None:
        if not self.log_path.exists():
            fd = os.open(str(self.log_path), os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o600)
            os.close(fd)

    def log_event(
        self,
        action: str,
        result: str,
        target: str,
        reason: Optional[str] = None,
        pid: Optional[int] = None
    ) -> None:
        """Append one event.

        Args:
            action: INIT | UNLOCK | ADD | UPDATE | GET | SEARCH | DELETE
            result: OK | DENIED | ERROR
            target: "label/user", a credential id, or "-"
            reason: Optional short reason for DENIED/ERROR
            pid: Process ID, defaults to the current process

        """
        now = datetime.now(timezone.utc)

        parts = [
            now.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            f"[{pid if pid is not None else os.getpid()}]",
            result,
            action,
            _escape(target) if target else "-",
        ]
        if reason:
            parts.append(_escape(" ".join(reason.split()), keep_spaces=True))

        with self.lock:
            self._rotate_if_stale(now)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(" ".join(parts) + "\n")

    def _rotate_if_stale(self, now: datetime) -> None:
        """Rotate once per day when the current file was last written before today."""
        today = now.strftime(ROTATED_DATE_FORMAT)
        if self._rotated_on == today:
            return
        self._rotated_on = today

        try:
            mtime = datetime.fromtimestamp(self.log_path.stat().st_mtime, tz=timezone.utc)
        except FileNotFoundError:
            return

        if mtime.strftime(ROTATED_DATE_FORMAT) < today and self.log_path.stat().st_size > 0:
            self._rotate(mtime)
            self._cleanup_old_logs(now)

    def _rotate(self, written_at: datetime) -> None:
        rotated = self.log_path.with_name(
            f"{self.log_path.name}.{written_at.strftime(ROTATED_DATE_FORMAT)}"
        )
        # Never clobber an existing rotated file
        if not rotated.exists():
            self.log_path.rename(rotated)
            self._create_log_file()

    def _cleanup_old_logs(self, now: datetime) -> None:
        cutoff = now - timedelta(days=self.retention_days)

        for log_file in self.log_path.parent.glob(f"{self.log_path.name}.*"):
            try:
                logged_on = datetime.strptime(
                    log_file.name.rsplit(".", 1)[-1], ROTATED_DATE_FORMAT
                ).replace(tzinfo=timezone.utc)
            except ValueError:
                continue
            if logged_on < cutoff:
                log_file.unlink()

    def read_recent(self, lines: int = 100) -> List[str]:
        """Return up to the last N lines of the current log (most recent last)."""
        if not self.log_path.exists():
            return []
        with open(self.log_path, encoding="utf-8") as f:
            return f.readlines()[-lines:]

    def get_log_files(self) -> List[Path]:
        """Current and rotated log files, newest first."""
        logs = list(self.log_path.parent.glob(f"{self.log_path.name}.*"))
        if self.log_path.exists():
            logs.append(self.log_path)
        logs.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        return logs
