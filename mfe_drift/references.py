"""
Reference Extractor - pulls the commit reference out of a module's bundle URL

Bundles are published under a path that carries the commit they were built
from, right after a path segment named after the module:

    https://host/<module>/<sha>/bundle/<module>/file.js
    https://host/<module>/<sha>/

The module name must match a whole path segment, so ``vtx-ui-mf-a`` never
matches inside ``vtx-ui-mf-ab``.
"""

import re
from typing import Optional
from urllib.parse import urlsplit

from .errors import ReferenceNotFound
from .models import ReferencePolicy, ResourceReference


def _reference_pattern(module_name: str) -> "re.Pattern[str]":
    # segment equal to the module name, then the next segment, which must be closed by "/"
    return re.compile(rf"(?:^|(?<=/)){re.escape(module_name)}/([^/]*)(?=/)")


def find_commit_reference(module_name: str, url: str) -> Optional[str]:
    """Return the first non-empty reference after a ``<module>/`` segment, or None."""
    path = urlsplit(url).path
    for match in _reference_pattern(module_name).finditer(path):
        if match.group(1):
            return match.group(1)
    return None


def extract_reference(module_name: str, url: str,
                      policy: ReferencePolicy = ReferencePolicy.STRICT) -> ResourceReference:
    """
    Parse a manifest entry into a ResourceReference.

    Args:
        module_name: Module name as it appears in the manifest
        url: Versioned resource URL from the manifest
        policy: STRICT raises when no reference is found, LENIENT records None

    Returns:
        ResourceReference for the URL

    Raises:
        ReferenceNotFound: No reference in the URL under the strict policy
    """
    reference = find_commit_reference(module_name, url)
    if reference is None and policy is ReferencePolicy.STRICT:
        raise ReferenceNotFound(module_name, url)
    return ResourceReference(full_url=url, commit_reference=reference)
