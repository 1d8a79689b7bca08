"""Append-only JSON-lines audit log."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .models import AuditEntry

logger = logging.getLogger(__name__)


class AuditLog:
    """Audit trail of mutating secret operations, one JSON object per line.

    Entries are only ever appended; the log is never rewritten.
    """

    def __init__(self, path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def append(self, entry: AuditEntry) -> AuditEntry:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a") as f:
            f.write(json.dumps(entry.to_dict()) + "\n")
        logger.debug(f"Audit: {entry.action} {entry.key or ''} in {entry.environment}")
        return entry

    def record(
        self,
        action: str,
        environment: str,
        key: Optional[str] = None,
        masked_value: Optional[str] = None,
        file: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditEntry:
        """Build an entry stamped with the current UTC time and append it."""
        entry = AuditEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            environment=environment,
            key=key,
            masked_value=masked_value,
            file=file,
            details=details,
        )
        return self.append(entry)

    def read(self, environment: Optional[str] = None) -> List[AuditEntry]:
        """
        Read entries in file (append) order.

        Lines that are not valid JSON are skipped with a warning.
        """
        if not self.path.exists():
            return []

        entries: List[AuditEntry] = []
        with open(self.path, "r") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = AuditEntry.from_dict(json.loads(line))
                except (json.JSONDecodeError, KeyError, TypeError) as e:
                    logger.warning(f"Skipping unreadable audit line {line_number} in {self.path}: {e}")
                    continue
                if environment is None or entry.environment == environment:
                    entries.append(entry)
        return entries


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 audit timestamp (a trailing ``Z`` is accepted)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_entries(entries: List[AuditEntry]) -> str:
    """Human-readable rendering of entries in the order given."""
    lines = []
    for entry in entries:
        target = entry.key or "-"
        lines.append(f"[{entry.timestamp}] {entry.action.upper()} {target} in {entry.environment}")
        if entry.masked_value is not None:
            lines.append(f"  Value: {entry.masked_value}")
        if entry.file:
            lines.append(f"  File: {entry.file}")
        lines.append("")
    return "\n".join(lines)
