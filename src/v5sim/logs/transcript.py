from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator


@dataclass
class TranscriptLogger:
    """Append-only JSONL record of the lines a session sent and received."""

    path: str

    def record(self, direction: str, line: str, **fields: Any) -> None:
        record: dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "direction": direction,
            "line": line,
        }
        if fields:
            record.update(fields)

        p = Path(self.path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with p.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")

    def record_error(self, direction: str, error: dict[str, Any]) -> None:
        """Log a protocol error next to the traffic that caused it."""
        self.record(direction, error.get("line") or "", error=error)


def read_transcript(path: str, direction: str | None = None) -> Iterator[dict[str, Any]]:
    """Iterate transcript records, optionally only one direction ("in"/"out")."""
    p = Path(path)
    if not p.exists():
        return
    with p.open("r", encoding="utf-8") as f:
        for raw in f:
            raw = raw.strip()
            if not raw:
                continue
            record = json.loads(raw)
            if direction is None or record.get("direction") == direction:
                yield record
