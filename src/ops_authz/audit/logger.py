"""Append-only JSONL audit trail.

Matrix mutation entries are written as newline-delimited JSON records,
one per :class:`~ops_authz.audit.trail.AuditEntry`.  A batch is written
with a single ``write`` call followed by ``fsync``; if anything fails the
file is truncated back to its previous length so a batch never leaves a
partial tail behind.

Thread-safety is achieved with a threading.Lock so the trail is safe to
call from multiple threads within the same process.

Example
-------
>>> from pathlib import Path
>>> trail = JsonlAuditTrail(Path("/tmp/matrix-audit.jsonl"))
>>> trail.record(entry)
>>> len(trail.read_all())
1
"""
from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Iterator

from ops_authz.audit.trail import AuditEntry, AuditTrail
from ops_authz.errors import AuditWriteFailed

logger = logging.getLogger(__name__)


class JsonlAuditTrail(AuditTrail):
    """Append-only JSONL audit trail.

    Parameters
    ----------
    log_path:
        Path to the ``.jsonl`` audit file.  Parent directories are created
        automatically on first write.
    """

    def __init__(self, log_path: Path) -> None:
        self._log_path = Path(log_path)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def record_many(self, entries: list[AuditEntry]) -> None:
        """Append ``entries`` as one write; all or nothing.

        Raises
        ------
        AuditWriteFailed
            If the file cannot be written.  The file is left as it was.
        """
        if not entries:
            return
        payload = "".join(json.dumps(e.to_dict(), default=str) + "\n" for e in entries)
        with self._lock:
            try:
                self._log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise AuditWriteFailed(f"Cannot create audit directory for {self._log_path}: {exc}") from exc
            self._append(payload)

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def read_all(self) -> list[AuditEntry]:
        """Return all entries from the log file in append order.

        Returns an empty list when the file does not exist.  Malformed
        lines are skipped with a warning.
        """
        return list(self._iter_entries())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _append(self, payload: str) -> None:
        try:
            fh = self._log_path.open("a", encoding="utf-8")
        except OSError as exc:
            raise AuditWriteFailed(f"Cannot open audit log {self._log_path}: {exc}") from exc
        with fh:
            start = fh.tell()
            try:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            except OSError as exc:
                try:
                    fh.truncate(start)
                except OSError:
                    logger.error("Could not truncate partial audit write in %s", self._log_path)
                raise AuditWriteFailed(f"Cannot write audit log {self._log_path}: {exc}") from exc

    def _iter_entries(self) -> Iterator[AuditEntry]:
        """Yield parsed entries from the log file one at a time."""
        if not self._log_path.exists():
            return
        with self._lock:
            with self._log_path.open("r", encoding="utf-8") as fh:
                lines = fh.readlines()
        for lineno, line in enumerate(lines, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield AuditEntry.from_dict(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed audit line %d in %s: %s", lineno, self._log_path, exc)

    @property
    def log_path(self) -> Path:
        """The filesystem path of the audit log file."""
        return self._log_path
