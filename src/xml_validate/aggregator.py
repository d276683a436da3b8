"""Batch statistics and the end-of-run report."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from xml_validate.report import Reporter
    from xml_validate.session import Outcome

XMLNS_PREFIX = "xmlns="
VALID_PREFIX = "valid-"
VALID_XMLNS_PREFIX = VALID_PREFIX + XMLNS_PREFIX
NO_DEFAULT_NAMESPACE = "no default namespace"
SEPARATOR = "-" * 77


@dataclass
class BatchStatistics:
    """Process-wide counters for one run."""

    errors: int = 0
    warnings: int = 0
    documents: int = 0
    valid: int = 0
    started: float | None = None  # set when the first document completes
    status_counts: dict[str, int] = field(default_factory=dict)
    error_sources: dict[str, list[str]] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> int:
        if self.started is None:
            return 0
        return int((time.monotonic() - self.started) * 1000)

    @property
    def valid_percent(self) -> float:
        if not self.documents:
            return 0.0
        return 100.0 * self.valid / self.documents


class Aggregator:
    """Folds per-document outcomes into batch statistics and reports them."""

    def __init__(self, stats: BatchStatistics, reporter: Reporter, summary: bool = False):
        self._stats = stats
        self._reporter = reporter
        self._summary = summary

    @property
    def stats(self) -> BatchStatistics:
        return self._stats

    def add_status(self, key: str, count: int = 1) -> None:
        counts = self._stats.status_counts
        counts[key] = counts.get(key, 0) + count

    def add_error(self, outcome: Outcome, key: str) -> None:
        """Group an error under its key, or print it now if the header is out."""
        if outcome.printed:
            self._reporter.print(f"-  {key}")
            return
        self.add_source_error(outcome.source, key)

    def add_source_error(self, source: str, key: str) -> None:
        sources = self._stats.error_sources.setdefault(key, [])
        if source not in sources:
            sources.append(source)

    def complete(self, outcome: Outcome) -> None:
        """Fold a finished document into the batch."""
        stats = self._stats
        if stats.started is None:
            stats.started = time.monotonic()
        stats.documents += 1
        stats.errors += outcome.errors
        stats.warnings += outcome.warnings
        for key in sorted(outcome.stats):
            self.add_status(key)
        for key in outcome.error_keys:
            self.add_error(outcome, key)
        if outcome.is_valid:
            stats.valid += 1
            if self._summary:
                label = outcome.default_namespace or NO_DEFAULT_NAMESPACE
                self.add_status(VALID_XMLNS_PREFIX + label)

    def report(self) -> None:
        """Print grouped errors, totals and the status summary."""
        stats = self._stats
        out = self._reporter

        if stats.error_sources:
            for key, sources in list(stats.error_sources.items()):
                if len(sources) == 1:
                    out.print(f"\nCheck: {sources[0]}")
                    out.print(f"-  {key}")
                    del stats.error_sources[key]
            for key, sources in stats.error_sources.items():
                out.print(f"\n{key}")
                for source in sources:
                    out.print(f"  {source}")
            out.print(f"\n{SEPARATOR}")

        out.print(
            f"\nErrors: {stats.errors}  Warnings: {stats.warnings}  "
            f"Files: {stats.documents}  Time: {stats.elapsed_ms} ms"
        )
        if stats.documents:
            out.print(
                f"Valid files {stats.valid}/{stats.documents} ({stats.valid_percent:.0f}%)"
            )

        if stats.status_counts:
            out.print("\nSummary:")
            for key in sorted(stats.status_counts):
                if key.startswith(VALID_PREFIX):
                    continue
                value = stats.status_counts[key]
                if key.startswith(XMLNS_PREFIX):
                    valid_count = stats.status_counts.get(VALID_PREFIX + key)
                    if valid_count is not None:
                        percent = 100.0 * valid_count / value
                        out.print(
                            f"{value:5d} {key:<35} \tvalid: {valid_count:3d} ({percent:2.0f}%)"
                        )
                        continue
                out.print(f"{value:5d} {key}")
