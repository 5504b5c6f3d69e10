"""Error taxonomy for the drift reconciliation engine."""

from typing import List, Optional


class DriftEngineError(Exception):
    """Base class for all reconciliation errors"""
    pass


class ManifestNotFound(DriftEngineError):
    """An environment's import map is unreachable or is not a valid manifest."""

    def __init__(self, environment: str, url: str, reason: str):
        self.environment = environment
        self.url = url
        self.reason = reason
        super().__init__(
            f"Failed to download import map for '{environment}' at {url}: {reason}"
        )


class ReferenceNotFound(DriftEngineError):
    """A module URL does not contain a recoverable commit reference."""

    def __init__(self, module: str, url: str):
        self.module = module
        self.url = url
        super().__init__(f"No commit reference for '{module}' found in URL {url}")


class MetadataResolutionFailed(DriftEngineError):
    """The source-control host could not resolve a commit for one module."""

    def __init__(self, module: str, reference: str, reason: str,
                 status_code: Optional[int] = None):
        self.module = module
        self.reference = reference
        self.reason = reason
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code else ""
        super().__init__(
            f"Could not resolve commit '{reference}' for '{module}'{detail}: {reason}"
        )


class ConfigurationMissing(DriftEngineError):
    """Required configuration is absent or malformed. Raised at startup."""

    def __init__(self, missing_fields: List[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(f"Missing required configuration fields: {self.missing_fields}")


class RepositoryListingFailed(DriftEngineError):
    """The organization's repository listing could not be fetched."""

    def __init__(self, owner: str, reason: str, status_code: Optional[int] = None):
        self.owner = owner
        self.reason = reason
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code else ""
        super().__init__(f"Failed to list repositories for '{owner}'{detail}: {reason}")
