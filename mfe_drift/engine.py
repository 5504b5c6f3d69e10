"""
Reconciliation Engine - one full pass from import maps to resolved commits

Phases run strictly one after another; each phase waits for all of its
concurrent work to settle before the next begins:

    fetch manifests -> group by module -> resolve commit metadata

Drift is computed on demand from the finished result, in whichever view the
caller asks for. The engine keeps no state between runs.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .commit_source import CommitSource, build_commit_source
from .config import Config
from .drift import DriftCalculator
from .grouping import group_by_module
from .http_client import create_http_session
from .manifest import ManifestFetcher
from .models import (
    DetailedModuleEnvironmentTable,
    DriftMode,
    DriftTable,
    format_timestamp,
    table_to_dict,
)
from .resolver import CommitResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of one reconciliation pass."""
    generated_at: datetime
    environments: List[str]
    baseline: str
    modules: DetailedModuleEnvironmentTable
    manifest_errors: Dict[str, str] = field(default_factory=dict)

    def drift(self, mode: DriftMode = DriftMode.BEHIND_BASELINE,
              now: Optional[datetime] = None) -> DriftTable:
        """Compute drift reports for the requested view."""
        return DriftCalculator(self.baseline, now=now).compute(self.modules, mode)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": format_timestamp(self.generated_at),
            "environments": list(self.environments),
            "baseline": self.baseline,
            "manifest_errors": dict(self.manifest_errors),
            "modules": table_to_dict(self.modules),
        }

    def drift_to_dict(self, mode: DriftMode = DriftMode.BEHIND_BASELINE,
                      now: Optional[datetime] = None) -> Dict[str, Any]:
        reports = self.drift(mode, now=now)
        return {
            "generated_at": format_timestamp(self.generated_at),
            "mode": mode.value,
            "baseline": self.baseline,
            "summary": DriftCalculator.summarize(reports),
            "modules": table_to_dict(reports),
        }


class ReconciliationEngine:
    """Runs reconciliation passes for a validated Config."""

    def __init__(self, config: Config,
                 session: Optional[requests.Session] = None,
                 source: Optional[CommitSource] = None,
                 fetcher: Optional[ManifestFetcher] = None):
        """
        Args:
            config: Validated configuration
            session: HTTP session shared by the default fetcher and commit source
            source: Commit metadata source (default: built from config.scm_provider)
            fetcher: Manifest fetcher (default: ManifestFetcher over ``session``)
        """
        self.config = config
        self.session = session or create_http_session(
            retries=config.http_retries,
            pool_size=max(10, config.max_lookup_workers or 0),
        )
        self.source = source or build_commit_source(config, self.session)
        self.fetcher = fetcher or ManifestFetcher(config, self.session)

    def run(self) -> ReconciliationResult:
        """
        Execute one reconciliation pass.

        Raises:
            ManifestNotFound: An environment failed and partial results are not allowed
            ReferenceNotFound: A module URL has no commit reference under the strict policy
        """
        config = self.config
        started = time.time()
        generated_at = datetime.now(timezone.utc)

        logger.info(f"📡 Fetching import maps for {', '.join(config.environment_names)}")
        manifests, errors = self.fetcher.fetch_all()

        table = group_by_module(
            manifests,
            config.environment_names,
            name_filter=config.module_filter,
            excluded=config.excluded_modules,
            policy=config.reference_policy,
            case_sensitive=config.case_sensitive_filters,
        )

        resolver = CommitResolver(
            self.source,
            owner=config.github_org,
            dedupe=config.dedupe_lookups,
            max_workers=config.max_lookup_workers,
            redact=config.redact_secrets,
        )
        modules = resolver.resolve(table)

        logger.info(f"✅ Reconciled {len(modules)} modules in {time.time() - started:.2f}s")
        return ReconciliationResult(
            generated_at=generated_at,
            environments=config.environment_names,
            baseline=config.baseline.name,
            modules=modules,
            manifest_errors={env: config.redact_secrets(e) for env, e in errors.items()},
        )

    def list_repositories(self) -> List[Dict[str, Any]]:
        """List the organization's repositories matching the configured filter prefix."""
        return self.source.list_repositories(
            self.config.github_org,
            self.config.filter_prefix,
            repository_type=self.config.repository_type,
        )
