import json
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
import requests

from mfe_drift.commit_source import CommitSource
from mfe_drift.config import Config
from mfe_drift.errors import MetadataResolutionFailed
from mfe_drift.models import CommitMetadata, Environment

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

ENVIRONMENTS = [
    Environment("development", "https://dev.example.test"),
    Environment("qa", "https://qa.example.test"),
    Environment("staging", "https://staging.example.test"),
    Environment("production", "https://prod.example.test"),
]


def days_ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


def import_map(imports: Dict[str, str]) -> str:
    return json.dumps({"imports": imports})


def bundle_url(module: str, sha: str) -> str:
    return f"https://cdn.example.test/{module}/{sha}/bundle/{module}/{module}.js"


class FakeCommitSource(CommitSource):
    """Commit source answering from a dict of reference -> committer date."""

    def __init__(self, dates: Optional[Dict[str, Optional[datetime]]] = None,
                 failures: Optional[Dict[str, str]] = None,
                 barrier: Optional[threading.Barrier] = None,
                 repositories: Optional[List[str]] = None):
        super().__init__("https://api.example.test", None, requests.Session())
        self.dates = dates or {}
        self.failures = failures or {}
        self.barrier = barrier
        self.repositories = repositories or []
        self.calls = []
        self._lock = threading.Lock()

    def _auth_headers(self):
        return {}

    def get_commit_metadata(self, owner, module_name, reference):
        with self._lock:
            self.calls.append((owner, module_name, reference))
        if self.barrier is not None:
            self.barrier.wait(timeout=5)
        if reference in self.failures:
            raise MetadataResolutionFailed(module_name, reference, self.failures[reference], 404)
        return CommitMetadata(
            sha=reference,
            committer_date=self.dates.get(reference),
            canonical_url=f"https://github.example.test/{owner}/{module_name}/commit/{reference}",
            raw={"sha": reference},
        )

    def list_repositories(self, owner, name_filter=None, repository_type="internal"):
        names = [name for name in self.repositories if not name_filter or name_filter in name]
        return [{"name": name, "url": f"https://github.example.test/{owner}/{name}"} for name in sorted(names)]


@pytest.fixture
def config():
    return Config(
        github_token="ghp_secrettoken123",
        github_org="acme-frontend",
        filter_prefix="vtx-ui",
        environments=list(ENVIRONMENTS),
        module_filter="vtx-ui",
    )


@pytest.fixture
def fake_source():
    return FakeCommitSource()
