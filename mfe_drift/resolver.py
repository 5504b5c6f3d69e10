"""
Commit Metadata Resolver - attaches commit timestamps to every deployed reference

Resolution happens in three steps so the number of round trips does not grow
with modules x environments:

1. collect every (module, environment, reference) that needs a lookup,
2. run all lookups concurrently and wait for the whole batch,
3. build a new table from the completed results.

A failed lookup only affects the entries that share it.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Hashable, List, NamedTuple, Optional, Union

from .commit_source import CommitSource
from .errors import MetadataResolutionFailed
from .models import (
    CommitDetail,
    CommitMetadata,
    DetailedModuleEnvironmentTable,
    ModuleEnvironmentTable,
    ResourceReference,
)

logger = logging.getLogger(__name__)


class LookupTask(NamedTuple):
    """One table entry waiting for commit metadata."""
    module: str
    environment: str
    reference: ResourceReference


LookupOutcome = Union[CommitMetadata, MetadataResolutionFailed]


def collect_lookups(table: ModuleEnvironmentTable) -> List[LookupTask]:
    """Flatten the table into the entries that need a remote lookup."""
    return [
        LookupTask(module, environment, reference)
        for module, row in table.items()
        for environment, reference in row.items()
        if reference is not None and reference.commit_reference
    ]


class CommitResolver:
    """Resolves a ModuleEnvironmentTable into a DetailedModuleEnvironmentTable."""

    def __init__(self, source: CommitSource, owner: str, dedupe: bool = True,
                 max_workers: Optional[int] = None,
                 redact: Callable[[str], str] = str):
        """
        Args:
            source: Source-control client used for lookups
            owner: Organization or group that owns the module repositories
            dedupe: Share one lookup between identical (module, reference) pairs
            max_workers: Optional cap on concurrent lookups (default: one per lookup)
            redact: Applied to error messages before they are stored
        """
        self.source = source
        self.owner = owner
        self.dedupe = dedupe
        self.max_workers = max_workers
        self.redact = redact

    def _lookup_key(self, index: int, task: LookupTask) -> Hashable:
        if self.dedupe:
            return (task.module, task.reference.commit_reference)
        return index

    def _run_lookups(self, tasks: List[LookupTask]) -> Dict[Hashable, LookupOutcome]:
        unique: Dict[Hashable, LookupTask] = {}
        for index, task in enumerate(tasks):
            unique.setdefault(self._lookup_key(index, task), task)

        if not unique:
            return {}

        logger.info(f"🔍 Resolving {len(tasks)} deployed commits with {len(unique)} lookups")
        workers = min(self.max_workers or len(unique), len(unique))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures: Dict[Hashable, Future] = {
                key: executor.submit(self.source.get_commit_metadata, self.owner, task.module,
                                     task.reference.commit_reference)
                for key, task in unique.items()
            }
            wait(futures.values())

        outcomes: Dict[Hashable, LookupOutcome] = {}
        for key, future in futures.items():
            try:
                outcomes[key] = future.result()
            except MetadataResolutionFailed as e:
                outcomes[key] = e
            except Exception as e:
                # any other failure from a commit source stays with its own entries
                task = unique[key]
                outcomes[key] = MetadataResolutionFailed(
                    task.module, task.reference.commit_reference,
                    f"lookup failed ({e.__class__.__name__}: {e})",
                )
        return outcomes

    def resolve(self, table: ModuleEnvironmentTable) -> DetailedModuleEnvironmentTable:
        """
        Resolve every non-null reference in the table.

        Null entries stay null and are never looked up. References without a
        commit (lenient extraction) become unresolved details without a lookup.
        """
        tasks = collect_lookups(table)
        outcomes = self._run_lookups(tasks)

        details: Dict[tuple, CommitDetail] = {}
        for index, task in enumerate(tasks):
            outcome = outcomes[self._lookup_key(index, task)]
            if isinstance(outcome, MetadataResolutionFailed):
                logger.warning(f"⚠️ {task.module} ({task.environment}): {self.redact(str(outcome))}")
                details[(task.module, task.environment)] = CommitDetail.unresolved(
                    task.reference, error=self.redact(str(outcome))
                )
            else:
                details[(task.module, task.environment)] = CommitDetail.from_metadata(task.reference, outcome)

        return {
            module: {
                environment: (
                    None if reference is None
                    else details.get((module, environment)) or CommitDetail.unresolved(reference)
                )
                for environment, reference in row.items()
            }
            for module, row in table.items()
        }
