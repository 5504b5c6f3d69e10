"""
Microfrontend Drift

Reports which commit of each microfrontend is live in every deployment
environment and how far each environment has drifted from development.
"""

from .config import Config
from .engine import ReconciliationEngine, ReconciliationResult
from .errors import (
    ConfigurationMissing,
    DriftEngineError,
    ManifestNotFound,
    MetadataResolutionFailed,
    ReferenceNotFound,
    RepositoryListingFailed,
)
from .models import DriftMode, ReferencePolicy, Severity

__all__ = [
    'Config',
    'ReconciliationEngine',
    'ReconciliationResult',

    # Errors
    'DriftEngineError',
    'ManifestNotFound',
    'ReferenceNotFound',
    'MetadataResolutionFailed',
    'ConfigurationMissing',
    'RepositoryListingFailed',

    # Enums
    'DriftMode',
    'ReferencePolicy',
    'Severity',
]
