"""Object-store keys for uploaded trace bundles.

Identifiers arrive from clients, so every component of a key is validated
against a strict pattern before any path or key is built from it.
"""

from __future__ import annotations

import re

from ..errors import UnsafeIdentifierError

_TEAM_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{0,63}$")
_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$")
_SHA256_HEX_RE = re.compile(r"^[0-9a-f]{64}$")

BUNDLE_SCHEMA_VERSION = "v1"


def assert_safe_team_id(team_id: str) -> str:
    if not isinstance(team_id, str) or not _TEAM_ID_RE.match(team_id):
        raise UnsafeIdentifierError(f"Unsafe team id: {team_id!r}")
    return team_id


def assert_safe_session_id(session_id: str) -> str:
    if not isinstance(session_id, str) or not _SESSION_ID_RE.match(session_id):
        raise UnsafeIdentifierError(f"Unsafe session id: {session_id!r}")
    return session_id


def assert_safe_sha256_hex(digest: str) -> str:
    if not isinstance(digest, str) or not _SHA256_HEX_RE.match(digest):
        raise UnsafeIdentifierError(f"Not a lowercase sha256 hex digest: {digest!r}")
    return digest


def _bundle_prefix(team_id: str, session_id: str) -> str:
    return (
        f"teams/{assert_safe_team_id(team_id)}/trace-bundles/{BUNDLE_SCHEMA_VERSION}"
        f"/sessions/{assert_safe_session_id(session_id)}"
    )


def trace_bundle_key(team_id: str, session_id: str, content_sha256: str) -> str:
    """Key of a gzipped JSONL event bundle, addressed by its content hash."""
    digest = assert_safe_sha256_hex(content_sha256)
    return f"{_bundle_prefix(team_id, session_id)}/{digest}.jsonl.gz"


def trace_bundle_meta_key(team_id: str, session_id: str, content_sha256: str) -> str:
    digest = assert_safe_sha256_hex(content_sha256)
    return f"{_bundle_prefix(team_id, session_id)}/{digest}.meta.json"
