"""Text signatures shared by the document builder, miner and outcome gate.

Signatures are normalized, volatile-token-free strings used as grouping keys:
the same command or error seen in two sessions should produce the same
signature even if temp paths, ids or whitespace differ.
"""

from __future__ import annotations

import re

_MAX_SIGNATURE_LENGTH = 160
_MAX_FAMILY_WORDS = 3

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
_UUID_RE = re.compile(r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b")
_LONG_HEX_RE = re.compile(r"\b(?=[0-9a-f]*[a-f])(?=[0-9a-f]*[0-9])[0-9a-f]{12,}\b")
_WHITESPACE_RE = re.compile(r"\s+")
_ENV_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=\S*$")
_SHELL_OPERATORS = {"|", "||", "&&", ";", ">", ">>", "2>&1", "<"}
# Positional arguments (paths, files, assignments, quoted or numeric values)
_ARGUMENT_RE = re.compile(r"[/.='\"]|^\d")

# A line is an error signature candidate if any of these match (first 2KB only)
_ERROR_LINE_RE = re.compile(
    r"error|exception|traceback|failed|failure|fatal|denied|not found|no such file"
    r"|cannot|could not|unable to|unknown option|unrecognized|invalid|enoent|eacces"
    r"|timed? ?out|refused|\b[45]\d\d\b",
    re.I,
)

_FILE_PATH_RE = re.compile(
    r"(?<![\w:/.-])((?:~|\.{1,2})?/?(?:[\w.-]+/)+[\w.-]+\.[A-Za-z0-9]{1,8})(?![\w/])"
)


def normalize_text(text: str) -> str:
    """Lowercase, strip ANSI codes, mask ids, and collapse whitespace."""
    if not text:
        return ""
    text = _ANSI_RE.sub("", text).lower()
    text = _UUID_RE.sub("<uuid>", text)
    text = _LONG_HEX_RE.sub("<hex>", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_command_signature(command: str) -> str:
    """Normalized first line of a command, clipped."""
    if not command or not command.strip():
        return ""
    first_line = command.strip().splitlines()[0]
    return normalize_text(first_line)[:_MAX_SIGNATURE_LENGTH]


def command_family(command: str) -> str:
    """The operation family of a command: its leading words up to the first flag.

    Positional arguments after the executable also end the family, so
    ``npx eslint src/app.tsx`` and ``npx eslint --fix src/app.tsx`` share
    family ``npx eslint``.

    Environment assignments and a leading ``cd <dir> &&`` are skipped, so
    ``cd app && FOO=1 npm run lint --fix`` belongs to family ``npm run lint``.
    """
    signature = normalize_command_signature(command)
    if not signature:
        return ""

    tokens = signature.split(" ")
    # Skip leading `cd <dir> &&` segments
    while len(tokens) >= 3 and tokens[0] == "cd" and tokens[2] in ("&&", ";"):
        tokens = tokens[3:]

    words: list[str] = []
    for token in tokens:
        if not words and _ENV_ASSIGNMENT_RE.match(token):
            continue
        if token in _SHELL_OPERATORS or token.startswith("-"):
            break
        if words and _ARGUMENT_RE.search(token):
            break
        words.append(token)
        if len(words) >= _MAX_FAMILY_WORDS:
            break
    return " ".join(words)


def extract_error_signatures(text: str, limit: int = 3) -> list[str]:
    """Distinct normalized lines that look like error messages, in order of appearance."""
    if not text:
        return []

    signatures: list[str] = []
    for line in text[:2000].splitlines():
        if not _ERROR_LINE_RE.search(line):
            continue
        normalized = normalize_text(line)[:_MAX_SIGNATURE_LENGTH]
        if len(normalized) < 4 or normalized in signatures:
            continue
        signatures.append(normalized)
        if len(signatures) >= limit:
            break
    return signatures


def extract_likely_file_paths(text: str, limit: int = 5) -> list[str]:
    """Distinct path-like tokens (``src/foo.py``, ``/tmp/x.log``) in order of appearance."""
    if not text:
        return []

    paths: list[str] = []
    for match in _FILE_PATH_RE.finditer(text):
        path = match.group(1)
        if path in paths:
            continue
        paths.append(path)
        if len(paths) >= limit:
            break
    return paths
