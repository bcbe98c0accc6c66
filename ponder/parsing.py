"""Parsing helpers for free-form evaluator output.

The evaluator is a text-in, text-out collaborator. Nothing it returns is
trusted to be structured, so every consumer goes through these helpers:

- ``parse_labeled_number``: ``"Empathy score: 0.82"`` style lines
- ``parse_labeled_text``: ``"Reason: ..."`` style lines
- ``parse_list_items``: numbered or bulleted lists
- ``extract_json``: the first JSON object or array, with code fences and
  Python literals cleaned up
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

_NUMBER = r"([-+]?\d+(?:\.\d+)?|[-+]?\.\d+)"

# "1. text", "2) text", full-width variants, and "- text" / "* text" bullets
_NUMBERED_ITEM = re.compile(r"^\s*(\d+)[.．)）]\s*(.+)$")
_BULLET_ITEM = re.compile(r"^\s*[-*•]\s+(.+)$")

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def parse_labeled_number(text: str, label: str) -> Optional[float]:
    """Find ``<label>: <number>`` in text and return the number.

    The sign is part of the match so that a reported ``-0.4`` is seen as
    negative instead of being read as ``0.4``. Range checks are left to the
    caller.

    Args:
        text: Evaluator output
        label: Label preceding the number, matched case-insensitively

    Returns:
        The parsed number, or None if no such line exists
    """
    if not text:
        return None
    pattern = re.compile(rf"{re.escape(label)}\**\s*[:：=]\s*\**\s*{_NUMBER}", re.IGNORECASE)
    match = pattern.search(text)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def parse_labeled_text(text: str, label: str) -> Optional[str]:
    """Return the rest of the first line starting with ``<label>:``."""
    if not text:
        return None
    pattern = re.compile(rf"^\s*\**{re.escape(label)}\**\s*[:：]\s*(.+)$", re.IGNORECASE | re.MULTILINE)
    match = pattern.search(text)
    if not match:
        return None
    value = match.group(1).strip(" \t*")
    return value or None


def parse_list_items(text: str) -> list[str]:
    """Extract items from a numbered or bulleted list.

    Returns an empty list when the text contains no list markers at all.
    """
    items = []
    for line in (text or "").splitlines():
        match = _NUMBERED_ITEM.match(line)
        if match:
            items.append(match.group(2).strip())
            continue
        match = _BULLET_ITEM.match(line)
        if match:
            items.append(match.group(1).strip())
    return items


def sanitize_json(json_str: str) -> str:
    """Fix the usual ways model output deviates from strict JSON.

    Handles Python literals (None/True/False) and trailing commas before a
    closing bracket or brace.
    """
    json_str = re.sub(r"\bNone\b", "null", json_str)
    json_str = re.sub(r"\bTrue\b", "true", json_str)
    json_str = re.sub(r"\bFalse\b", "false", json_str)
    json_str = re.sub(r",\s*([\]}])", r"\1", json_str)
    return json_str


def extract_json(text: str) -> Optional[Any]:
    """Decode the first JSON object or array embedded in text.

    Markdown code fences are stripped first. Decoding starts at each ``{``
    or ``[`` in turn until one succeeds.

    Returns:
        The decoded value, or None if nothing decodes
    """
    if not text:
        return None

    block = _CODE_BLOCK.search(text)
    if block:
        text = block.group(1)
    text = sanitize_json(text.strip())

    decoder = json.JSONDecoder()
    position = 0
    while position < len(text):
        starts = [i for i in (text.find("{", position), text.find("[", position)) if i != -1]
        if not starts:
            break
        start = min(starts)
        try:
            value, _ = decoder.raw_decode(text, start)
            return value
        except json.JSONDecodeError as e:
            logger.debug(f"No JSON at position {start}: {e}")
        position = start + 1
    return None
