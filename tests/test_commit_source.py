from datetime import datetime, timezone

import pytest
import requests
import requests_mock

from mfe_drift.commit_source import GitHubCommitSource, GitLabCommitSource, build_commit_source
from mfe_drift.errors import ConfigurationMissing, MetadataResolutionFailed, RepositoryListingFailed

GITHUB_API = "https://api.github.test"
GITLAB_API = "https://gitlab.example.test/api/v4"


@pytest.fixture
def github():
    return GitHubCommitSource(GITHUB_API, "ghp_token", requests.Session(), timeout=5)


@pytest.fixture
def gitlab():
    return GitLabCommitSource(GITLAB_API, "glpat_token", requests.Session(), timeout=5)


class TestGitHubCommitSource:

    def test_get_commit_metadata(self, github):
        payload = {
            "sha": "abc123def456",
            "html_url": "https://github.test/acme/vtx-ui-mf-x/commit/abc123def456",
            "commit": {
                "author": {"date": "2024-05-01T08:00:00Z"},
                "committer": {"date": "2024-05-02T09:30:00Z"},
            },
        }
        with requests_mock.Mocker() as m:
            m.get(f"{GITHUB_API}/repos/acme/vtx-ui-mf-x/commits/abc123", json=payload)
            metadata = github.get_commit_metadata("acme", "vtx-ui-mf-x", "abc123")
            request = m.request_history[0]

        assert request.headers["Authorization"] == "Bearer ghp_token"
        assert metadata.sha == "abc123def456"
        assert metadata.committer_date == datetime(2024, 5, 2, 9, 30, tzinfo=timezone.utc)
        assert metadata.canonical_url == payload["html_url"]
        assert metadata.raw == payload

    def test_missing_committer_date(self, github):
        with requests_mock.Mocker() as m:
            m.get(f"{GITHUB_API}/repos/acme/vtx-ui-mf-x/commits/abc123",
                  json={"sha": "abc123", "commit": {"committer": None}})
            metadata = github.get_commit_metadata("acme", "vtx-ui-mf-x", "abc123")
        assert metadata.committer_date is None

    @pytest.mark.parametrize("payload", [
        {"sha": "abc123", "commit": {"committer": {"date": "not-a-date"}}},
        {"sha": "abc123", "commit": ["unexpected"]},
        [],
        "just a string",
    ])
    def test_malformed_payload(self, github, payload):
        with requests_mock.Mocker() as m:
            m.get(f"{GITHUB_API}/repos/acme/vtx-ui-mf-x/commits/abc123", json=payload)
            with pytest.raises(MetadataResolutionFailed) as exc_info:
                github.get_commit_metadata("acme", "vtx-ui-mf-x", "abc123")
        assert "malformed commit payload" in exc_info.value.reason
        assert exc_info.value.reference == "abc123"

    def test_rate_limit(self, github):
        with requests_mock.Mocker() as m:
            m.get(f"{GITHUB_API}/repos/acme/vtx-ui-mf-x/commits/abc123", status_code=403,
                  headers={"X-RateLimit-Remaining": "0"}, json={"message": "API rate limit exceeded"})
            with pytest.raises(MetadataResolutionFailed) as exc_info:
                github.get_commit_metadata("acme", "vtx-ui-mf-x", "abc123")

        error = exc_info.value
        assert error.reason == "rate limit exceeded"
        assert error.status_code == 403
        assert error.module == "vtx-ui-mf-x"
        assert error.reference == "abc123"

    @pytest.mark.parametrize("status,reason", [
        (401, "authentication failed"),
        (403, "access denied"),
        (404, "not found"),
        (422, "not found"),
        (429, "rate limit"),
        (500, "unexpected response"),
    ])
    def test_error_statuses(self, github, status, reason):
        with requests_mock.Mocker() as m:
            m.get(f"{GITHUB_API}/repos/acme/vtx-ui-mf-x/commits/abc123", status_code=status)
            with pytest.raises(MetadataResolutionFailed) as exc_info:
                github.get_commit_metadata("acme", "vtx-ui-mf-x", "abc123")
        assert reason in exc_info.value.reason
        assert exc_info.value.status_code == status

    def test_transport_error(self, github):
        with requests_mock.Mocker() as m:
            m.get(f"{GITHUB_API}/repos/acme/vtx-ui-mf-x/commits/abc123", exc=requests.exceptions.ConnectionError)
            with pytest.raises(MetadataResolutionFailed) as exc_info:
                github.get_commit_metadata("acme", "vtx-ui-mf-x", "abc123")
        assert "ConnectionError" in exc_info.value.reason

    def test_list_repositories_paginates_and_filters(self, github):
        page_one = [{"name": f"service-{i:03d}", "html_url": f"https://github.test/acme/service-{i:03d}"}
                    for i in range(98)]
        page_one += [
            {"name": "vtx-ui-mf-b", "html_url": "https://github.test/acme/vtx-ui-mf-b"},
            {"name": "vtx-ui-mf-a", "html_url": "https://github.test/acme/vtx-ui-mf-a"},
        ]
        page_two = [{"name": "vtx-ui-mf-c", "html_url": "https://github.test/acme/vtx-ui-mf-c"}]

        with requests_mock.Mocker() as m:
            m.get(f"{GITHUB_API}/orgs/acme/repos", [{"json": page_one}, {"json": page_two}])
            repositories = github.list_repositories("acme", "vtx-ui")
            queries = [request.qs for request in m.request_history]

        assert [repo["name"] for repo in repositories] == ["vtx-ui-mf-a", "vtx-ui-mf-b", "vtx-ui-mf-c"]
        assert queries[0]["type"] == ["internal"]
        assert queries[0]["page"] == ["1"]
        assert queries[1]["page"] == ["2"]

    def test_list_repositories_failure(self, github):
        with requests_mock.Mocker() as m:
            m.get(f"{GITHUB_API}/orgs/acme/repos", status_code=401)
            with pytest.raises(RepositoryListingFailed) as exc_info:
                github.list_repositories("acme", "vtx-ui")
        assert exc_info.value.owner == "acme"
        assert exc_info.value.status_code == 401


class TestGitLabCommitSource:

    def test_get_commit_metadata(self, gitlab):
        payload = {
            "id": "abc123def456",
            "committed_date": "2024-05-02T11:30:00.000+02:00",
            "web_url": "https://gitlab.example.test/acme/vtx-ui-mf-x/-/commit/abc123def456",
        }
        with requests_mock.Mocker() as m:
            m.get(f"{GITLAB_API}/projects/acme%2Fvtx-ui-mf-x/repository/commits/abc123", json=payload)
            metadata = gitlab.get_commit_metadata("acme", "vtx-ui-mf-x", "abc123")
            request = m.request_history[0]

        assert request.headers["PRIVATE-TOKEN"] == "glpat_token"
        assert metadata.sha == "abc123def456"
        assert metadata.committer_date == datetime(2024, 5, 2, 9, 30, tzinfo=timezone.utc)
        assert metadata.canonical_url == payload["web_url"]

    def test_unparseable_committed_date(self, gitlab):
        with requests_mock.Mocker() as m:
            m.get(f"{GITLAB_API}/projects/acme%2Fvtx-ui-mf-x/repository/commits/abc123",
                  json={"id": "abc123", "committed_date": "yesterday"})
            with pytest.raises(MetadataResolutionFailed) as exc_info:
                gitlab.get_commit_metadata("acme", "vtx-ui-mf-x", "abc123")
        assert "malformed commit payload" in exc_info.value.reason

    def test_not_found(self, gitlab):
        with requests_mock.Mocker() as m:
            m.get(f"{GITLAB_API}/projects/acme%2Fvtx-ui-mf-x/repository/commits/abc123", status_code=404)
            with pytest.raises(MetadataResolutionFailed):
                gitlab.get_commit_metadata("acme", "vtx-ui-mf-x", "abc123")

    def test_list_repositories(self, gitlab):
        projects = [
            {"path": "vtx-ui-mf-a", "web_url": "https://gitlab.example.test/acme/vtx-ui-mf-a"},
            {"path": "billing-api", "web_url": "https://gitlab.example.test/acme/billing-api"},
        ]
        with requests_mock.Mocker() as m:
            m.get(f"{GITLAB_API}/groups/acme/projects", json=projects)
            repositories = gitlab.list_repositories("acme", "vtx-ui")
        assert repositories == [{"name": "vtx-ui-mf-a", "url": "https://gitlab.example.test/acme/vtx-ui-mf-a"}]


class TestBuildCommitSource:

    def test_github_default(self, config):
        source = build_commit_source(config, requests.Session())
        assert isinstance(source, GitHubCommitSource)
        assert source.api_url == "https://api.github.com"
        assert source.token == config.github_token

    def test_gitlab_with_custom_url(self, config):
        config.scm_provider = "gitlab"
        config.scm_api_url = "https://gitlab.internal.test/api/v4/"
        source = build_commit_source(config, requests.Session())
        assert isinstance(source, GitLabCommitSource)
        assert source.api_url == "https://gitlab.internal.test/api/v4"

    def test_unknown_provider(self, config):
        config.scm_provider = "bitbucket"
        with pytest.raises(ConfigurationMissing):
            build_commit_source(config, requests.Session())
