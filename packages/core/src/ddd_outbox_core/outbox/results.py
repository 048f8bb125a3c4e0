"""Per-message outcomes of one dispatch run."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class DispatchOutcome(str, enum.Enum):
    PROCESSED = "PROCESSED"
    RETRY_SCHEDULED = "RETRY_SCHEDULED"
    QUARANTINED = "QUARANTINED"
    # Lease expired and another processor took the message over.
    CLAIM_LOST = "CLAIM_LOST"


@dataclass(frozen=True)
class MessageResult:
    message_id: str
    message_type: str
    outcome: DispatchOutcome
    error: str | None = None


@dataclass
class ProcessingReport:
    """What one ``process_messages`` call did."""

    results: list[MessageResult] = field(default_factory=list)
    # Claimed messages, including those whose outcome could not be recorded.
    claimed: int = 0

    @property
    def recorded(self) -> int:
        return len(self.results)

    @property
    def processed(self) -> int:
        return self._count(DispatchOutcome.PROCESSED)

    @property
    def failed(self) -> int:
        return self._count(DispatchOutcome.RETRY_SCHEDULED)

    @property
    def quarantined(self) -> int:
        return self._count(DispatchOutcome.QUARANTINED)

    def outcome_of(self, message_id: str) -> DispatchOutcome | None:
        for result in self.results:
            if result.message_id == message_id:
                return result.outcome
        return None

    def _count(self, outcome: DispatchOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)
