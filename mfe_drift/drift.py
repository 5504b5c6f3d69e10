"""
Drift Calculator - staleness and drift signals per module and environment

Two views are computed from the same resolved table:

- since_deployed:   how old the deployed commit is
- behind_baseline:  how far the deployed commit is from the one in the
                    baseline (earliest-promoted) environment

Severity is tiered by completed sprints of 14 days (``days // 14``), not by
raw days over a sprint boundary: 15 to 27 days is still one completed sprint
and stays healthy, so 30 days behind is a warning. Tiers are checked in
ascending order and the highest one crossed wins:

    healthy        0-27 days     (at most 1 completed sprint)
    warning        28-41 days    (more than 1 completed sprint)
    almostDanger   42-69 days    (more than 2 completed sprints)
    danger         70+ days      (more than 4 completed sprints)

In the baseline view, an environment running a commit with the same timestamp
as the baseline is reported as ``acceptable`` / in sync, whatever its age.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from .models import (
    CommitDetail,
    DetailedModuleEnvironmentTable,
    DriftMode,
    DriftReport,
    DriftTable,
    Severity,
)


SPRINT_DAYS = 14
SECONDS_PER_DAY = 86400

# (completed sprints that must be exceeded, tier)
SEVERITY_THRESHOLDS = [
    (1, Severity.WARNING),
    (2, Severity.ALMOST_DANGER),
    (4, Severity.DANGER),
]


def whole_days_between(first: datetime, second: datetime) -> int:
    """Absolute distance between two timestamps in whole days."""
    return int(abs((first - second).total_seconds()) // SECONDS_PER_DAY)


def severity_for_days(days: Optional[int]) -> Severity:
    if days is None:
        return Severity.UNKNOWN

    completed_sprints = days // SPRINT_DAYS
    severity = Severity.HEALTHY
    for threshold, tier in SEVERITY_THRESHOLDS:
        if completed_sprints > threshold:
            severity = tier
    return severity


class DriftCalculator:
    """Computes DriftReports for a resolved table in either view."""

    def __init__(self, baseline: str, now: Optional[datetime] = None):
        """
        Args:
            baseline: Name of the baseline environment
            now: Reference time for "since deployed" (default: current UTC time)
        """
        self.baseline = baseline
        self.now = now

    def _now(self) -> datetime:
        return self.now or datetime.now(timezone.utc)

    def report(self, detail: Optional[CommitDetail], baseline_detail: Optional[CommitDetail],
               mode: DriftMode = DriftMode.BEHIND_BASELINE) -> Optional[DriftReport]:
        """Build the report for one cell; None where the module is not deployed."""
        if detail is None:
            return None

        committed_at = detail.committed_at
        baseline_resolved = baseline_detail is not None and baseline_detail.resolved

        days_since = whole_days_between(self._now(), committed_at) if detail.resolved else None
        days_behind = (
            whole_days_between(committed_at, baseline_detail.committed_at)
            if detail.resolved and baseline_resolved else None
        )
        in_sync = days_behind is not None and committed_at == baseline_detail.committed_at

        if mode is DriftMode.BEHIND_BASELINE:
            if in_sync:
                return DriftReport(days_since, days_behind, Severity.ACCEPTABLE, True,
                                   f"in sync with {self.baseline}")
            days, label = days_behind, f"behind {self.baseline}"
        else:
            days, label = days_since, "since deployed"

        severity = severity_for_days(days)
        message = "unknown" if days is None else f"{days} days {label}"
        return DriftReport(days_since, days_behind, severity, in_sync, message)

    def compute(self, table: DetailedModuleEnvironmentTable,
                mode: DriftMode = DriftMode.BEHIND_BASELINE) -> DriftTable:
        """Compute the requested view for every module and environment."""
        reports: DriftTable = {}
        for module, row in table.items():
            baseline_detail = row.get(self.baseline)
            reports[module] = {
                environment: self.report(detail, baseline_detail, mode)
                for environment, detail in row.items()
            }
        return reports

    @staticmethod
    def summarize(reports: DriftTable) -> Dict[str, int]:
        """Count reports per severity."""
        counts = {severity.value: 0 for severity in Severity}
        for row in reports.values():
            for report in row.values():
                if report is not None:
                    counts[report.severity.value] += 1
        return counts
