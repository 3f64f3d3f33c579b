"""Per-invocation record of which window minutes have run."""

from __future__ import annotations

from dataclasses import dataclass

MinuteKey = tuple[int, int]


def format_key(key: MinuteKey) -> str:
    hour, minute = key
    return f"{hour}-{minute}"


@dataclass
class ExecutionRecord:
    success: bool
    attempts: int = 1


class ExecutionLedger:
    """Success flag per (hour, minute) within one monitoring window.

    Only a successful minute is final; a failed one stays eligible for
    another attempt on a later tick.
    """

    def __init__(self) -> None:
        self._records: dict[MinuteKey, ExecutionRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def should_run(self, key: MinuteKey) -> bool:
        record = self._records.get(key)
        return record is None or not record.success

    def record(self, key: MinuteKey, success: bool) -> ExecutionRecord:
        previous = self._records.get(key)
        if previous is not None and previous.success:
            raise ValueError(f"minute {format_key(key)} already succeeded")
        attempts = previous.attempts + 1 if previous else 1
        record = ExecutionRecord(success=success, attempts=attempts)
        self._records[key] = record
        return record

    def get(self, key: MinuteKey) -> ExecutionRecord | None:
        return self._records.get(key)

    def overview(self) -> dict[str, bool]:
        """Success flag per minute, keyed "hour-minute", in execution order."""
        return {format_key(k): r.success for k, r in self._records.items()}
