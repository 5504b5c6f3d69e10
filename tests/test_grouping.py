import pytest

from mfe_drift.errors import ReferenceNotFound
from mfe_drift.grouping import group_by_module, module_qualifies
from mfe_drift.models import ReferencePolicy, ResourceReference

from .conftest import bundle_url

ENV_NAMES = ["development", "qa", "staging", "production"]


@pytest.fixture
def manifests():
    return {
        "development": {
            "vtx-ui-mf-a": bundle_url("vtx-ui-mf-a", "aaa111"),
            "vtx-ui-mf-b": bundle_url("vtx-ui-mf-b", "bbb111"),
            "react": "https://cdn.example.test/react@18/umd/react.production.min.js",
        },
        "qa": {
            "vtx-ui-mf-a": bundle_url("vtx-ui-mf-a", "aaa111"),
        },
        "staging": {},
        "production": {
            "vtx-ui-mf-a": bundle_url("vtx-ui-mf-a", "aaa000"),
            "vtx-ui-mf-c": bundle_url("vtx-ui-mf-c", "ccc000"),
        },
    }


def test_every_row_has_every_environment(manifests):
    table = group_by_module(manifests, ENV_NAMES, name_filter="vtx-ui")

    assert set(table) == {"vtx-ui-mf-a", "vtx-ui-mf-b", "vtx-ui-mf-c"}
    for row in table.values():
        assert list(row) == ENV_NAMES
        for cell in row.values():
            assert cell is None or isinstance(cell, ResourceReference)


def test_cells_hold_extracted_references(manifests):
    table = group_by_module(manifests, ENV_NAMES, name_filter="vtx-ui")

    assert table["vtx-ui-mf-a"]["development"].commit_reference == "aaa111"
    assert table["vtx-ui-mf-a"]["qa"].commit_reference == "aaa111"
    assert table["vtx-ui-mf-a"]["staging"] is None
    assert table["vtx-ui-mf-a"]["production"].commit_reference == "aaa000"
    assert table["vtx-ui-mf-b"]["production"] is None
    assert table["vtx-ui-mf-c"]["development"] is None
    assert table["vtx-ui-mf-c"]["production"].full_url == bundle_url("vtx-ui-mf-c", "ccc000")


def test_filter_skips_unrelated_entries(manifests):
    # "react" has no commit reference; strict extraction would fail if it were not filtered out
    table = group_by_module(manifests, ENV_NAMES, name_filter="vtx-ui", policy=ReferencePolicy.STRICT)
    assert "react" not in table


def test_exclusion_list_is_exact_match(manifests):
    table = group_by_module(manifests, ENV_NAMES, name_filter="vtx-ui", excluded=["vtx-ui-mf-b", "vtx-ui-mf"])
    assert set(table) == {"vtx-ui-mf-a", "vtx-ui-mf-c"}


def test_missing_environment_manifest_leaves_column_null(manifests):
    del manifests["qa"]
    table = group_by_module(manifests, ENV_NAMES, name_filter="vtx-ui")
    assert all(row["qa"] is None for row in table.values())
    assert all(list(row) == ENV_NAMES for row in table.values())


def test_rows_are_sorted_by_module_name(manifests):
    table = group_by_module(manifests, ENV_NAMES, name_filter="vtx-ui")
    assert list(table) == sorted(table)


def test_strict_policy_fails_on_unversioned_url():
    manifests = {"development": {"vtx-ui-mf-a": "https://cdn.example.test/vtx-ui-mf-a.js"}}
    with pytest.raises(ReferenceNotFound):
        group_by_module(manifests, ENV_NAMES, name_filter="vtx-ui", policy=ReferencePolicy.STRICT)


def test_lenient_policy_keeps_unversioned_url():
    manifests = {"development": {"vtx-ui-mf-a": "https://cdn.example.test/vtx-ui-mf-a.js"}}
    table = group_by_module(manifests, ENV_NAMES, name_filter="vtx-ui", policy=ReferencePolicy.LENIENT)
    cell = table["vtx-ui-mf-a"]["development"]
    assert cell.commit_reference is None
    assert cell.full_url == "https://cdn.example.test/vtx-ui-mf-a.js"


def test_empty_input_gives_empty_table():
    assert group_by_module({}, ENV_NAMES, name_filter="vtx-ui") == {}


class TestModuleQualifies:

    def test_case_sensitive_by_default(self):
        assert module_qualifies("vtx-ui-mf-a", "vtx-ui", [])
        assert not module_qualifies("VTX-UI-mf-a", "vtx-ui", [])
        assert module_qualifies("vtx-ui-MF-A", "vtx-ui", ["vtx-ui-mf-a"])

    def test_case_insensitive(self):
        assert module_qualifies("VTX-UI-mf-a", "vtx-ui", [], case_sensitive=False)
        assert not module_qualifies("vtx-ui-MF-A", "vtx-ui", ["vtx-ui-mf-a"], case_sensitive=False)
