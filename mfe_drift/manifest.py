"""
Manifest Fetcher - downloads each environment's import map

Every environment publishes ``import-map.json`` mapping module names to the
versioned bundle URL it currently serves. When the file is missing, the root
app answers the request with its HTML shell instead of a 404, so the body is
checked for HTML before it is parsed.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Tuple

import requests

from .config import Config
from .errors import ManifestNotFound
from .models import Environment, Manifest

logger = logging.getLogger(__name__)

HTML_MARKER = "<body"


def validate_response(environment: str, url: str, body: str) -> None:
    """Reject an HTML fallback page served in place of the manifest."""
    if HTML_MARKER in body.lower():
        raise ManifestNotFound(
            environment, url,
            "downloaded contents include HTML from the root app, indicating that the file does not exist"
        )


def parse_manifest(environment: str, url: str, body: str) -> Manifest:
    """
    Parse an import map body into a module name -> URL mapping.

    Args:
        environment: Environment name (for error reporting)
        url: Where the body came from (for error reporting)
        body: Raw response text

    Returns:
        The ``imports`` mapping of the import map
    """
    validate_response(environment, url, body)

    try:
        document = json.loads(body)
    except ValueError as e:
        raise ManifestNotFound(environment, url, f"response is not valid JSON ({e})")

    if not isinstance(document, dict) or not isinstance(document.get("imports"), dict):
        raise ManifestNotFound(environment, url, "response has no 'imports' mapping")

    imports = document["imports"]
    bad_entries = [name for name, value in imports.items() if not isinstance(value, str)]
    if bad_entries:
        raise ManifestNotFound(environment, url, f"non-string URLs for {sorted(bad_entries)}")

    return dict(imports)


class ManifestFetcher:
    """Downloads import maps for every configured environment."""

    def __init__(self, config: Config, session: requests.Session):
        self.config = config
        self.session = session

    def fetch_manifest(self, environment: Environment) -> Manifest:
        """Download and validate one environment's manifest."""
        url = self.config.manifest_url(environment)
        logger.debug(f"Getting import map file at {url}...")

        try:
            response = self.session.get(url, timeout=self.config.http_timeout)
        except requests.exceptions.RequestException as e:
            raise ManifestNotFound(environment.name, url, f"request failed ({e.__class__.__name__})")

        if response.status_code != 200:
            raise ManifestNotFound(environment.name, url, f"HTTP {response.status_code}")

        manifest = parse_manifest(environment.name, url, response.text)
        logger.info(f"📥 {environment.name}: import map with {len(manifest)} entries")
        return manifest

    def fetch_all(self, environments: Optional[List[Environment]] = None
                  ) -> Tuple[Dict[str, Manifest], Dict[str, ManifestNotFound]]:
        """
        Fetch every environment's manifest concurrently and wait for all of them.

        In the default mode any failure is fatal: once every fetch has settled the
        first failure, in environment order, is raised. With
        ``allow_partial_manifests`` the failures are returned instead.

        Returns:
            Tuple of (manifests by environment name, errors by environment name)
        """
        environments = list(environments or self.config.environments)
        if not environments:
            return {}, {}

        with ThreadPoolExecutor(max_workers=len(environments)) as executor:
            futures = {env.name: executor.submit(self.fetch_manifest, env) for env in environments}
            wait(futures.values())

        manifests: Dict[str, Manifest] = {}
        errors: Dict[str, ManifestNotFound] = {}
        for env in environments:
            try:
                manifests[env.name] = futures[env.name].result()
            except ManifestNotFound as e:
                logger.error(f"❌ {e}")
                errors[env.name] = e

        if errors and not self.config.allow_partial_manifests:
            raise next(iter(errors.values()))

        return manifests, errors
