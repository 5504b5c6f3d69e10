"""Configuration management for the microfrontend drift engine."""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ConfigurationMissing
from .models import Environment, ReferencePolicy

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_FILE = PROJECT_ROOT / "config" / "environments.yaml"

# Earliest-promoted first; the first entry is the drift baseline.
DEFAULT_ENVIRONMENTS = [
    Environment("development", "https://dev-app.vtxdev.net"),
    Environment("qa", "https://qa-app.vtxdev.net"),
    Environment("staging", "https://stage-app.vertexcloud.com"),
    Environment("production", "https://app.vertexcloud.com"),
]

DEFAULT_API_URLS = {
    "github": "https://api.github.com",
    "gitlab": "https://gitlab.com/api/v4",
}

# Environment variable name for every secret-bearing field, used for redaction
SECRET_ENV_VARS = {
    "github_token": "WIMFME_GITHUB_PAT",
    "github_org": "WIMFME_GITHUB_ORG",
    "filter_prefix": "WIMFME_GITHUB_FILTER_PREFIX",
}


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_number(name: str, value: Any, default: Any, kind: type) -> Any:
    if value is None or value == "":
        return default
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigurationMissing([f"{name} (got '{value}', expected {kind.__name__})"])


def _as_int(name: str, value: Any, default: Optional[int]) -> Optional[int]:
    return _as_number(name, value, default, int)


def _as_float(name: str, value: Any, default: float) -> float:
    return _as_number(name, value, default, float)


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


def load_settings_file(path: Path) -> Dict[str, Any]:
    """Read the YAML settings file. A missing file yields an empty mapping."""
    if not path.exists():
        logger.info(f"No settings file at {path}, using built-in defaults")
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationMissing([f"settings file {path} (expected a mapping)"])
    return data


def parse_environments(entries: Any) -> List[Environment]:
    """Build the ordered environment registry from the settings file entries."""
    if entries is None:
        return list(DEFAULT_ENVIRONMENTS)
    if not isinstance(entries, list):
        raise ConfigurationMissing(["environments (expected a list)"])

    environments = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or not entry.get("name") or not entry.get("base_url"):
            raise ConfigurationMissing([f"environments[{index}] (needs name and base_url)"])
        environments.append(Environment(str(entry["name"]), str(entry["base_url"]).rstrip("/")))
    return environments


@dataclass
class Config:
    """
    Explicit configuration for one deployment of the drift engine.

    Built once at startup (usually through ``Config.from_env``), validated with
    ``validate()`` and then passed into the engine. Nothing downstream reads the
    process environment.
    """

    # Source-control host
    github_token: Optional[str] = None
    github_org: Optional[str] = None
    filter_prefix: Optional[str] = None
    scm_provider: str = "github"
    scm_api_url: Optional[str] = None
    repository_type: str = "internal"

    # Manifests
    environments: List[Environment] = field(default_factory=lambda: list(DEFAULT_ENVIRONMENTS))
    manifest_path: str = "/ui/import-map.json"
    module_filter: Optional[str] = "vtx-ui"
    excluded_modules: List[str] = field(default_factory=list)
    case_sensitive_filters: bool = True

    # Engine policies
    reference_policy: ReferencePolicy = ReferencePolicy.STRICT
    allow_partial_manifests: bool = False
    dedupe_lookups: bool = True
    max_lookup_workers: Optional[int] = None

    # HTTP client
    http_timeout: float = 30.0
    http_retries: int = 0

    # Server
    refresh_minutes: int = 15
    log_level: str = "INFO"
    config_file: Optional[Path] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 config_file: Optional[Path] = None) -> "Config":
        """
        Build a Config from ``WIMFME_*`` environment variables and the YAML settings file.

        Environment variables win over values in the settings file.

        Args:
            environ: Mapping to read instead of ``os.environ``
            config_file: Settings file path (default: WIMFME_CONFIG_FILE or config/environments.yaml)

        Returns:
            Unvalidated Config; call ``validate()`` before use
        """
        env = os.environ if environ is None else environ

        path = Path(config_file or env.get("WIMFME_CONFIG_FILE") or DEFAULT_CONFIG_FILE)
        settings = load_settings_file(path)

        policy_raw = env.get("WIMFME_REFERENCE_POLICY") or settings.get("reference_policy") or "strict"
        try:
            policy = ReferencePolicy(str(policy_raw).strip().lower())
        except ValueError:
            raise ConfigurationMissing([f"reference_policy (got '{policy_raw}', expected strict or lenient)"])

        return cls(
            github_token=env.get("WIMFME_GITHUB_PAT"),
            github_org=env.get("WIMFME_GITHUB_ORG") or settings.get("org"),
            filter_prefix=env.get("WIMFME_GITHUB_FILTER_PREFIX") or settings.get("filter_prefix"),
            scm_provider=(env.get("WIMFME_SCM_PROVIDER") or settings.get("scm_provider") or "github").lower(),
            scm_api_url=env.get("WIMFME_SCM_API_URL") or settings.get("scm_api_url"),
            repository_type=settings.get("repository_type", "internal"),
            environments=parse_environments(settings.get("environments")),
            manifest_path=settings.get("manifest_path", "/ui/import-map.json"),
            module_filter=env.get("WIMFME_MODULE_FILTER") or settings.get("module_filter", "vtx-ui"),
            excluded_modules=_as_list(env.get("WIMFME_EXCLUDED_MODULES") or settings.get("excluded_modules")),
            case_sensitive_filters=_as_bool(settings.get("case_sensitive_filters"), True),
            reference_policy=policy,
            allow_partial_manifests=_as_bool(
                env.get("WIMFME_ALLOW_PARTIAL_MANIFESTS", settings.get("allow_partial_manifests")), False),
            dedupe_lookups=_as_bool(env.get("WIMFME_DEDUPE_LOOKUPS", settings.get("dedupe_lookups")), True),
            max_lookup_workers=_as_int("WIMFME_MAX_LOOKUP_WORKERS",
                                       env.get("WIMFME_MAX_LOOKUP_WORKERS", settings.get("max_lookup_workers")), None),
            http_timeout=_as_float("WIMFME_HTTP_TIMEOUT", env.get("WIMFME_HTTP_TIMEOUT", settings.get("http_timeout")), 30.0),
            http_retries=_as_int("WIMFME_HTTP_RETRIES", env.get("WIMFME_HTTP_RETRIES", settings.get("http_retries")), 0),
            refresh_minutes=_as_int("WIMFME_REFRESH_MINUTES", env.get("WIMFME_REFRESH_MINUTES", settings.get("refresh_minutes")), 15),
            log_level=env.get("LOG_LEVEL", "INFO"),
            config_file=path,
        )

    def validate(self) -> None:
        """Validate configuration and raise ConfigurationMissing for missing or malformed values."""
        required_fields = [
            ("WIMFME_GITHUB_PAT", self.github_token),
            ("WIMFME_GITHUB_ORG", self.github_org),
            ("WIMFME_GITHUB_FILTER_PREFIX", self.filter_prefix),
            ("module_filter", self.module_filter),
            ("environments", self.environments),
        ]
        missing = [name for name, value in required_fields if not value]

        if self.scm_provider not in DEFAULT_API_URLS:
            missing.append(f"scm_provider (got '{self.scm_provider}', expected github or gitlab)")

        names = [env.name for env in self.environments]
        if len(names) != len(set(names)):
            missing.append("environments (duplicate environment names)")
        for env in self.environments:
            if not env.base_url.startswith(("http://", "https://")):
                missing.append(f"environments.{env.name}.base_url (must be an HTTP/HTTPS URL)")

        if self.max_lookup_workers is not None and self.max_lookup_workers < 1:
            missing.append("max_lookup_workers (must be positive)")
        if self.http_timeout <= 0:
            missing.append("http_timeout (must be positive)")
        if self.http_retries < 0:
            missing.append("http_retries (must not be negative)")
        if self.refresh_minutes < 1:
            missing.append("refresh_minutes (must be positive)")

        if missing:
            raise ConfigurationMissing(missing)

    @property
    def baseline(self) -> Environment:
        """The earliest-promoted environment, used as the drift reference point."""
        return self.environments[0]

    @property
    def environment_names(self) -> List[str]:
        return [env.name for env in self.environments]

    @property
    def api_url(self) -> str:
        return (self.scm_api_url or DEFAULT_API_URLS.get(self.scm_provider, "")).rstrip("/")

    def manifest_url(self, environment: Environment) -> str:
        return f"{environment.base_url.rstrip('/')}/{self.manifest_path.lstrip('/')}"

    def secrets(self) -> Dict[str, str]:
        """Configured secret values keyed by their environment variable name."""
        return {
            env_name: getattr(self, attr)
            for attr, env_name in SECRET_ENV_VARS.items()
            if getattr(self, attr)
        }

    def redact_secrets(self, text: Any) -> str:
        """Replace every configured secret value in ``text`` with ``REDACTED:<NAME>``."""
        return redact_secrets(text, self.secrets())

    def to_public_dict(self) -> Dict[str, Any]:
        """Non-secret settings, safe to expose over the API."""
        return {
            "scm_provider": self.scm_provider,
            "environments": [env.to_dict() for env in self.environments],
            "baseline": self.baseline.name if self.environments else None,
            "manifest_path": self.manifest_path,
            "excluded_modules": list(self.excluded_modules),
            "case_sensitive_filters": self.case_sensitive_filters,
            "reference_policy": self.reference_policy.value,
            "allow_partial_manifests": self.allow_partial_manifests,
            "dedupe_lookups": self.dedupe_lookups,
            "refresh_minutes": self.refresh_minutes,
        }


def redact_secrets(text: Any, secrets: Mapping[str, str]) -> str:
    """
    Redact secret values from a message or exception.

    Args:
        text: String or exception to clean
        secrets: Secret values keyed by the name to show in their place

    Returns:
        Text with each secret value replaced by ``REDACTED:<NAME>``
    """
    result = str(text)
    # Longest first so a secret containing another one is replaced whole
    for name, value in sorted(secrets.items(), key=lambda item: len(item[1]), reverse=True):
        if value:
            result = result.replace(value, f"REDACTED:{name}")
    return result
