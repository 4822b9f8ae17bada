"""
Tests for the status record types and request merging.
"""

import dataclasses

import pytest

from wtsync.models import (
    PRError,
    PRExists,
    PRLoading,
    PRNoPR,
    PRNotChecked,
    RefreshRequest,
    is_cacheable,
    merge_requests,
    record_from_dict,
    record_to_dict,
)
from wtsync.status_constants import ALL_LOADING_STATUSES, MERGEABLE_UNKNOWN


class TestStatusRecords:
    """Tests for the status record union."""

    def test_loading_status_discriminants(self):
        assert PRNotChecked().loading_status == "not_checked"
        assert PRLoading().loading_status == "loading"
        assert PRExists(number=1).loading_status == "exists"
        assert PRNoPR().loading_status == "no_pr"
        assert PRError("boom").loading_status == "error"

    def test_records_are_immutable(self):
        record = PRExists(number=5, state="OPEN")
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.state = "MERGED"

    def test_no_pr_has_no_number(self):
        assert PRNoPR().number is None

    def test_only_complete_results_are_cacheable(self):
        assert is_cacheable(PRExists(number=1))
        assert is_cacheable(PRNoPR())
        assert not is_cacheable(PRError("x"))
        assert not is_cacheable(PRLoading())
        assert not is_cacheable(PRNotChecked())

    def test_ready_to_merge(self):
        pr = PRExists(number=1, state="OPEN", checks="passing", mergeable="MERGEABLE")
        assert pr.is_ready_to_merge
        assert not pr.needs_attention

    def test_conflicts_need_attention(self):
        pr = PRExists(number=1, state="OPEN", checks="passing", mergeable="CONFLICTING")
        assert pr.has_conflicts
        assert pr.needs_attention
        assert not pr.is_ready_to_merge

    def test_state_predicates(self):
        assert PRExists(number=1, state="MERGED").is_merged
        assert PRExists(number=1, state="CLOSED").is_closed
        assert PRExists(number=1, state="OPEN").is_open

    def test_unknown_mergeability_is_not_ready(self):
        pr = PRExists(number=1, state="OPEN", checks="passing", mergeable=MERGEABLE_UNKNOWN)
        assert not pr.is_ready_to_merge
        assert not pr.needs_attention

    def test_every_record_has_a_known_status(self):
        records = [PRNotChecked(), PRLoading(), PRExists(), PRNoPR(), PRError(message="x")]
        assert [r.loading_status for r in records] == ALL_LOADING_STATUSES


class TestRecordSerialization:
    """Tests for record_to_dict / record_from_dict."""

    def test_exists_roundtrip(self):
        record = PRExists(number=42, state="OPEN", checks="pending", mergeable="UNKNOWN",
                          title="Add thing", url="https://x/42", head="feat-a")
        assert record_from_dict(record_to_dict(record)) == record

    def test_no_pr_roundtrip(self):
        assert record_from_dict(record_to_dict(PRNoPR())) == PRNoPR()

    def test_transient_records_are_not_restored(self):
        assert record_from_dict({"loading_status": "loading"}) is None
        assert record_from_dict({"loading_status": "not_checked"}) is None

    def test_malformed_data(self):
        assert record_from_dict(None) is None
        assert record_from_dict("exists") is None
        assert record_from_dict({"loading_status": "exists", "number": "12"}) is None
        assert record_from_dict({"loading_status": "bogus"}) is None


class TestMergeRequests:
    """Tests for merge_requests."""

    def test_keys_are_unioned(self):
        merged = merge_requests([
            RefreshRequest.for_keys(["a", "b"]),
            RefreshRequest.for_keys(["b", "c"]),
        ])
        assert merged.keys == frozenset({"a", "b", "c"})

    def test_visible_only_requires_all(self):
        merged = merge_requests([
            RefreshRequest.for_keys(["a"], visible_only=True),
            RefreshRequest.for_keys(["b"], visible_only=False),
        ])
        assert merged.visible_only is False

    def test_visible_only_kept_when_all_agree(self):
        merged = merge_requests([
            RefreshRequest.for_keys(["a"], visible_only=True),
            RefreshRequest.for_keys(["b"], visible_only=True),
        ])
        assert merged.visible_only is True

    def test_empty(self):
        merged = merge_requests([])
        assert merged.keys == frozenset()
        assert merged.visible_only is False
