"""Document builder: projects trace events into searchable documents.

Each event yields a base document with the whole payload as text, plus one
small document per extracted error signature and per likely file path. The
small documents let a query like "cannot find module x" hit the exact error
line without competing against the rest of a long tool output.
"""

from __future__ import annotations

import logging
import re

from .models import (
    IndexedDocument,
    MetadataValue,
    ToolResultPayload,
    TraceEvent,
    to_text,
)
from .signatures import extract_error_signatures, extract_likely_file_paths

logger = logging.getLogger(__name__)

_MAX_DOC_TEXT_LENGTH = 6_000
_WHITESPACE_RE = re.compile(r"\s+")


def _clip(text: str) -> str:
    if len(text) <= _MAX_DOC_TEXT_LENGTH:
        return text
    return f"{text[:_MAX_DOC_TEXT_LENGTH]}\n...[truncated]"


def parse_swebench_session(session_id: str) -> dict[str, str] | None:
    """Parse ``swebench::<instance>::<off|on>[::<replicate>]`` session ids."""
    parts = session_id.split("::")
    if len(parts) not in (3, 4) or parts[0] != "swebench":
        return None

    instance_id, variant = parts[1], parts[2]
    if not instance_id or variant not in ("off", "on"):
        return None

    replicate = (parts[3] if len(parts) == 4 else "r1").strip().lower() or "r1"
    return {
        "swebenchInstanceId": instance_id,
        "swebenchVariant": variant,
        "swebenchReplicate": replicate,
    }


class DefaultDocumentBuilder:
    """Deterministic event → documents projection. Documents are never mutated, only re-derived."""

    def build(self, event: TraceEvent) -> list[IndexedDocument]:
        if not event.id or not event.session_id:
            logger.debug("Skipping event without id/session: %r", event)
            return []

        payload_text = to_text(event.payload.raw)
        base_text = _WHITESPACE_RE.sub(" ", f"{event.type} {event.harness} {payload_text}").strip()

        metadata: dict[str, MetadataValue] = {
            "eventType": event.type,
            "harness": event.harness,
            "scope": event.scope.value,
            "sessionId": event.session_id,
        }
        if event.metrics is not None and event.metrics.outcome is not None:
            metadata["outcome"] = event.metrics.outcome.value

        payload = event.payload
        if isinstance(payload, ToolResultPayload):
            if payload.tool_name:
                metadata["toolName"] = payload.tool_name
            if payload.command:
                metadata["command"] = payload.command
            if payload.is_error is not None:
                metadata["isError"] = payload.is_error

        swebench = parse_swebench_session(event.session_id)
        if swebench:
            metadata.update(swebench)

        if event.agent_id:
            metadata["agentId"] = event.agent_id

        docs = [
            IndexedDocument(
                id=f"{event.id}:base",
                source_event_id=event.id,
                text=_clip(base_text),
                metadata=metadata,
            )
        ]

        # Signals come from the command and output lines, not the JSON blob
        signal_text = "\n".join(t for t in (event.command, event.output) if t) or payload_text

        for i, signature in enumerate(extract_error_signatures(signal_text)):
            docs.append(
                IndexedDocument(
                    id=f"{event.id}:err:{i}",
                    source_event_id=event.id,
                    text=signature,
                    metadata={**metadata, "isErrorSignature": True},
                )
            )

        for i, path in enumerate(extract_likely_file_paths(signal_text)):
            docs.append(
                IndexedDocument(
                    id=f"{event.id}:path:{i}",
                    source_event_id=event.id,
                    text=path,
                    metadata={**metadata, "isPath": True},
                )
            )

        return docs
