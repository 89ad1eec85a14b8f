"""Report accumulator: collects results across a run and flushes them to disk.

One ReportAccumulator is created per run and passed explicitly to
whatever produces results. Nothing is kept at module level.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from crawlguard.models.types import (
    InteractionResult, ValidationResult, ValidationStatus, utc_timestamp,
)


@dataclass
class ReportAccumulator:
    """Mutable collection of validation and interaction results for one run."""

    started_at: str = field(default_factory=utc_timestamp)
    validation_results: list[ValidationResult] = field(default_factory=list)
    interaction_results: dict[str, list[InteractionResult]] = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)

    def record_validation(self, result: ValidationResult):
        self.validation_results.append(result)

    def record_interactions(self, page_url: str, results: list[InteractionResult]):
        self.interaction_results.setdefault(page_url, []).extend(results)

    def note(self, message: str):
        self.notes.append(message)

    def reset(self):
        self.started_at = utc_timestamp()
        self.validation_results.clear()
        self.interaction_results.clear()
        self.notes.clear()

    @property
    def critical_count(self) -> int:
        return sum(1 for r in self.validation_results if r.status == ValidationStatus.CRITICAL)

    def summary(self) -> dict:
        by_status = {s.value: 0 for s in ValidationStatus}
        for r in self.validation_results:
            by_status[r.status.value] += 1
        clicked = sum(
            1 for results in self.interaction_results.values()
            for r in results if r.action == "clicked"
        )
        skipped = sum(
            1 for results in self.interaction_results.values()
            for r in results if r.action == "skipped"
        )
        return {
            "startedAt": self.started_at,
            "pages": len(self.validation_results),
            "byStatus": by_status,
            "interactionPages": len(self.interaction_results),
            "clicked": clicked,
            "skipped": skipped,
            "notes": list(self.notes),
        }

    def flush(self, path: str | Path) -> Path:
        """Write everything collected so far as one JSON document, then reset."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "summary": self.summary(),
            "validation": [r.to_dict() for r in self.validation_results],
            "interactions": {
                url: [r.to_dict() for r in results]
                for url, results in self.interaction_results.items()
            },
        }
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        self.reset()
        return path
