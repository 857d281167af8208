"""Tests for identifier validation and object-store keys."""

import pytest

from happypaths.errors import UnsafeIdentifierError
from happypaths.storage.keys import (
    assert_safe_session_id,
    assert_safe_team_id,
    trace_bundle_key,
    trace_bundle_meta_key,
)

_SHA = "a" * 64


class TestValidation:
    @pytest.mark.parametrize("session_id", ["s1", "Session_2", "abc-DEF-123"])
    def test_safe_session_ids(self, session_id):
        assert assert_safe_session_id(session_id) == session_id

    @pytest.mark.parametrize(
        "session_id",
        ["", "../etc/passwd", "a/b", "-leading", "x" * 129, "swebench::django::on", None],
    )
    def test_unsafe_session_ids(self, session_id):
        with pytest.raises(UnsafeIdentifierError):
            assert_safe_session_id(session_id)

    @pytest.mark.parametrize("team_id", ["Team", "team/x", "_team", "t" * 65])
    def test_unsafe_team_ids(self, team_id):
        with pytest.raises(UnsafeIdentifierError):
            assert_safe_team_id(team_id)


class TestBundleKeys:
    def test_bundle_key(self):
        assert trace_bundle_key("acme", "s1", _SHA) == (
            f"teams/acme/trace-bundles/v1/sessions/s1/{_SHA}.jsonl.gz"
        )

    def test_meta_key(self):
        assert trace_bundle_meta_key("acme", "s1", _SHA).endswith(f"/{_SHA}.meta.json")

    @pytest.mark.parametrize("digest", ["A" * 64, "a" * 63, "g" * 64])
    def test_rejects_bad_digest(self, digest):
        with pytest.raises(UnsafeIdentifierError):
            trace_bundle_key("acme", "s1", digest)

    def test_rejects_traversal_in_any_part(self):
        with pytest.raises(UnsafeIdentifierError):
            trace_bundle_key("acme", "../s1", _SHA)
        with pytest.raises(UnsafeIdentifierError):
            trace_bundle_meta_key("../acme", "s1", _SHA)
