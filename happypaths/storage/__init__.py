"""Trace stores and storage-key helpers."""

from .jsonl import JSONLTraceStore
from .keys import (
    assert_safe_session_id,
    assert_safe_sha256_hex,
    assert_safe_team_id,
    trace_bundle_key,
    trace_bundle_meta_key,
)
from .memory import InMemoryTraceStore

__all__ = [
    "InMemoryTraceStore",
    "JSONLTraceStore",
    "assert_safe_session_id",
    "assert_safe_sha256_hex",
    "assert_safe_team_id",
    "trace_bundle_key",
    "trace_bundle_meta_key",
]
