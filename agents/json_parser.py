"""
Resilient JSON extraction for LLM replies.

Model output is *supposed* to be JSON but regularly arrives wrapped in
markdown fences, sprinkled with ``//`` comments, prefixed with an
explanation, or cut off at the token limit.  ``extract_json`` cleans the
text, tries a plain ``json.loads`` and, only when that fails, runs a
structural repair pass that closes every container still open at the end of
the text.

Usage:
    from agents.json_parser import extract_json, UnrecoverableFormat

    data = extract_json(raw_reply)
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

USER_MESSAGE = (
    "AI output was incomplete or invalid. "
    "Please try reducing the number of days."
)

_WRAPPED_FENCE_RE = re.compile(r"^\s*```[\w+-]*[ \t]*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_ANY_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\n?(.*?)```", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"^\s*```[\w+-]*[ \t]*\n?")
_TRAILING_COMMA_RE = re.compile(r",\s*$")

_CLOSERS = {"{": "}", "[": "]"}


class UnrecoverableFormat(ValueError):
    """The reply could not be turned into JSON, even after repair.

    ``text`` holds the cleaned string that the last parse attempt saw.
    """

    def __init__(self, text: str, message: str = USER_MESSAGE):
        super().__init__(message)
        self.text = text


# ---------------------------------------------------------------------------
# Cleaning steps
# ---------------------------------------------------------------------------

def _strip_code_fence(text: str) -> str:
    """Keep only the interior of a ```json ... ``` block."""
    match = _WRAPPED_FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    # Already a JSON container: backticks inside it belong to string values
    if text.lstrip()[:1] in ("{", "["):
        return text
    match = _ANY_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    # Opening fence only: the reply was truncated before the closing marker
    return _OPEN_FENCE_RE.sub("", text, count=1).strip()


def _strip_line_comments(text: str) -> str:
    """Drop ``// ...`` up to end of line, leaving string literals alone."""
    out: list[str] = []
    in_string = False
    escaped = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif ch == "/" and i + 1 < n and text[i + 1] == "/":
            newline = text.find("\n", i)
            if newline == -1:
                break
            i = newline
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _skip_leading_prose(text: str) -> str:
    match = re.search(r"[{\[]", text)
    return text[match.start():] if match else text


def _strip_commas_before_closers(text: str) -> str:
    """Remove every comma followed only by whitespace and ``}`` / ``]``."""
    out: list[str] = []
    in_string = False
    escaped = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in "}]":
                i += 1
                continue
        out.append(ch)
        i += 1
    return "".join(out)


# ---------------------------------------------------------------------------
# Repair
# ---------------------------------------------------------------------------

def repair_truncated_json(text: str) -> str:
    """Close whatever the text left open.

    A single left-to-right scan tracks string/escape state and a stack of
    expected closers.  The scan is purely structural: values, numbers and
    keys are not validated.
    """
    stack: list[str] = []
    in_string = False
    escaped = False

    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "}]":
            if stack and stack[-1] == ch:
                stack.pop()

    if in_string:
        if escaped:
            text = text[:-1]
        text += '"'
    else:
        text = _TRAILING_COMMA_RE.sub("", text)

    while stack:
        text += stack.pop()

    return _strip_commas_before_closers(text)


def clean_llm_text(text: str) -> str:
    """Fence, comment and prose stripping shared by every parse attempt."""
    cleaned = _strip_code_fence(text.strip())
    cleaned = _strip_line_comments(cleaned)
    return _skip_leading_prose(cleaned).strip()


def extract_json(text: str) -> Any:
    """Parse JSON out of an LLM reply, repairing it when needed.

    Raises:
        UnrecoverableFormat: if neither the cleaned nor the repaired text parses.
    """
    cleaned = clean_llm_text(text or "")

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    repaired = repair_truncated_json(cleaned)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as exc:
        logger.error("JSON repair failed: %s", exc)
        logger.debug("Attempted string: %s", repaired)
        raise UnrecoverableFormat(repaired) from exc
