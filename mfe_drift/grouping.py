"""Cross-Environment Grouper - reshapes per-environment manifests into one row per module."""

import logging
from typing import Iterable, List, Mapping, Optional

from .models import Manifest, ModuleEnvironmentTable, ReferencePolicy
from .references import extract_reference

logger = logging.getLogger(__name__)


def module_qualifies(module_name: str, name_filter: str, excluded: Iterable[str],
                     case_sensitive: bool = True) -> bool:
    """True when the name contains ``name_filter`` and is not in the exclusion list."""
    name = module_name if case_sensitive else module_name.lower()
    needle = name_filter if case_sensitive else name_filter.lower()
    excluded_names = set(excluded) if case_sensitive else {e.lower() for e in excluded}
    return needle in name and name not in excluded_names


def group_by_module(manifests: Mapping[str, Manifest],
                    environment_names: List[str],
                    name_filter: str,
                    excluded: Optional[Iterable[str]] = None,
                    policy: ReferencePolicy = ReferencePolicy.STRICT,
                    case_sensitive: bool = True) -> ModuleEnvironmentTable:
    """
    Build the module -> environment -> ResourceReference table.

    Every qualifying module gets a row with a key for each environment in
    ``environment_names``; environments whose manifest lacks the module (or
    that have no manifest at all) keep None.

    Args:
        manifests: Manifest per environment name
        environment_names: All configured environments, earliest-promoted first
        name_filter: Substring a module name must contain
        excluded: Module names to leave out (exact match)
        policy: Reference extraction policy
        case_sensitive: Whether filter and exclusions compare case-sensitively

    Returns:
        ModuleEnvironmentTable ordered by module name

    Raises:
        ReferenceNotFound: An entry has no commit reference under the strict policy
    """
    excluded = list(excluded or [])
    rows: ModuleEnvironmentTable = {}

    for environment in environment_names:
        manifest = manifests.get(environment)
        if manifest is None:
            continue
        for module_name, url in manifest.items():
            if not module_qualifies(module_name, name_filter, excluded, case_sensitive):
                continue
            if module_name not in rows:
                rows[module_name] = {env: None for env in environment_names}
            rows[module_name][environment] = extract_reference(module_name, url, policy)

    logger.info(f"Grouped {len(rows)} modules across {len(environment_names)} environments")
    return {name: rows[name] for name in sorted(rows)}
