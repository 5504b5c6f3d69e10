"""
Source-control host clients

Resolve a commit reference to its committer timestamp and list an
organization's repositories. Each module is deployed from a repository of the
same name inside the configured organization (GitHub) or group (GitLab).
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from .config import Config
from .errors import ConfigurationMissing, MetadataResolutionFailed, RepositoryListingFailed
from .models import CommitMetadata, parse_timestamp

logger = logging.getLogger(__name__)

PER_PAGE = 100


class CommitSource(ABC):
    """Interface the resolver consumes; one remote call per ``get_commit_metadata``."""

    def __init__(self, api_url: str, token: Optional[str], session: requests.Session,
                 timeout: float = 30.0):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.session = session
        self.timeout = timeout

    @abstractmethod
    def get_commit_metadata(self, owner: str, module_name: str, reference: str) -> CommitMetadata:
        """Look up one commit. Raises MetadataResolutionFailed on any remote failure."""

    @abstractmethod
    def list_repositories(self, owner: str, name_filter: Optional[str] = None,
                          repository_type: str = "internal") -> List[Dict[str, Any]]:
        """List the owner's repositories whose name contains ``name_filter``."""

    @abstractmethod
    def _auth_headers(self) -> Dict[str, str]:
        pass

    def _get(self, url: str, module_name: str, reference: str,
             params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self.session.get(url, headers=self._auth_headers(), params=params,
                                        timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise MetadataResolutionFailed(module_name, reference, f"request failed ({e.__class__.__name__})")

        self._check_response(response, module_name, reference)
        try:
            return response.json()
        except ValueError:
            raise MetadataResolutionFailed(module_name, reference, "response is not valid JSON",
                                           response.status_code)

    def _get_commit(self, url: str, module_name: str, reference: str,
                    to_metadata: Callable[[Dict[str, Any]], CommitMetadata]) -> CommitMetadata:
        """Fetch one commit and map its payload, treating an unexpected shape as a failed lookup."""
        data = self._get(url, module_name, reference)
        if not isinstance(data, dict):
            raise MetadataResolutionFailed(module_name, reference,
                                           "malformed commit payload (expected a JSON object)", 200)
        try:
            return to_metadata(data)
        except (AttributeError, TypeError, ValueError) as e:
            raise MetadataResolutionFailed(module_name, reference, f"malformed commit payload ({e})", 200)

    @staticmethod
    def _check_response(response: requests.Response, module_name: str, reference: str) -> None:
        status = response.status_code
        if status == 200:
            return

        remaining = response.headers.get("X-RateLimit-Remaining",
                                         response.headers.get("RateLimit-Remaining"))
        if status == 429 or (status == 403 and remaining == "0"):
            reason = "rate limit exceeded"
        elif status == 401:
            reason = "authentication failed, token is invalid or expired"
        elif status == 403:
            reason = "access denied, token lacks permission for this repository"
        elif status in (404, 422):
            reason = "repository or commit not found"
        else:
            reason = "unexpected response from source-control host"
        raise MetadataResolutionFailed(module_name, reference, reason, status)

    def _paginate(self, url: str, owner: str, params: Dict[str, Any],
                  to_entry: Callable[[Dict[str, Any]], Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Walk a paginated listing until a short or empty page."""
        entries: List[Dict[str, Any]] = []
        page = 1
        while True:
            try:
                batch = self._get(url, owner, "*", params={**params, "per_page": PER_PAGE, "page": page})
            except MetadataResolutionFailed as e:
                raise RepositoryListingFailed(owner, e.reason, e.status_code)

            if not batch:
                break
            entries.extend(to_entry(item) for item in batch)
            if len(batch) < PER_PAGE:
                break
            page += 1
        return entries


class GitHubCommitSource(CommitSource):
    """GitHub REST API v3."""

    def _auth_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get_commit_metadata(self, owner: str, module_name: str, reference: str) -> CommitMetadata:
        url = (f"{self.api_url}/repos/{quote(owner, safe='')}/{quote(module_name, safe='')}"
               f"/commits/{quote(reference, safe='')}")
        return self._get_commit(url, module_name, reference, lambda data: CommitMetadata(
            sha=data.get("sha", reference),
            committer_date=parse_timestamp(((data.get("commit") or {}).get("committer") or {}).get("date")),
            canonical_url=data.get("html_url"),
            raw=data,
        ))

    def list_repositories(self, owner: str, name_filter: Optional[str] = None,
                          repository_type: str = "internal") -> List[Dict[str, Any]]:
        logger.info(f"Listing {repository_type} repositories for {owner}")
        repositories = self._paginate(
            f"{self.api_url}/orgs/{quote(owner, safe='')}/repos",
            owner,
            {"type": repository_type},
            lambda repo: {"name": repo["name"], "url": repo.get("html_url")},
        )
        return filter_repositories(repositories, name_filter)


class GitLabCommitSource(CommitSource):
    """GitLab REST API v4; the owner is a group path."""

    def _auth_headers(self) -> Dict[str, str]:
        return {"PRIVATE-TOKEN": self.token} if self.token else {}

    def get_commit_metadata(self, owner: str, module_name: str, reference: str) -> CommitMetadata:
        project = quote(f"{owner}/{module_name}", safe="")
        url = f"{self.api_url}/projects/{project}/repository/commits/{quote(reference, safe='')}"
        return self._get_commit(url, module_name, reference, lambda data: CommitMetadata(
            sha=data.get("id", reference),
            committer_date=parse_timestamp(data.get("committed_date")),
            canonical_url=data.get("web_url"),
            raw=data,
        ))

    def list_repositories(self, owner: str, name_filter: Optional[str] = None,
                          repository_type: str = "internal") -> List[Dict[str, Any]]:
        logger.info(f"Listing projects in group {owner}")
        params: Dict[str, Any] = {"include_subgroups": True, "archived": False}
        if repository_type:
            params["visibility"] = repository_type
        repositories = self._paginate(
            f"{self.api_url}/groups/{quote(owner, safe='')}/projects",
            owner,
            params,
            lambda project: {"name": project["path"], "url": project.get("web_url")},
        )
        return filter_repositories(repositories, name_filter)


def filter_repositories(repositories: List[Dict[str, Any]], name_filter: Optional[str]) -> List[Dict[str, Any]]:
    if name_filter:
        repositories = [repo for repo in repositories if name_filter in repo["name"]]
    return sorted(repositories, key=lambda repo: repo["name"])


PROVIDERS = {
    "github": GitHubCommitSource,
    "gitlab": GitLabCommitSource,
}


def build_commit_source(config: Config, session: requests.Session) -> CommitSource:
    """Create the client for the configured provider."""
    source_class = PROVIDERS.get(config.scm_provider)
    if source_class is None:
        raise ConfigurationMissing([f"scm_provider (got '{config.scm_provider}')"])
    return source_class(config.api_url, config.github_token, session, timeout=config.http_timeout)
