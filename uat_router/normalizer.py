"""
Normalization of routing completions.

Turns the raw text returned by the model into a ``RoutingResult``. The
model is asked for strict JSON but does not always comply, so parsing
degrades in three tiers:

1. JSON: the span from the first ``{`` to the last ``}`` is parsed as JSON
   and each field is read with its own default.
2. Labeled text: without any ``{...}`` span, ``Label: value`` lines and the
   ``Routing Reasoning:`` bullet list are scanned instead.
3. Failure: a ``{...}`` span that is not valid JSON yields the
   ``PARSE_ERROR`` result. It does not fall through to tier 2.

Normalization is pure: the same text always gives an equal result.
"""

import json
import logging
import re
from typing import Any, Optional

from .models import (
    MilestoneSummary,
    RequestorSummary,
    RoutingDecision,
    RoutingResult,
    ServiceSummary,
)


logger = logging.getLogger(__name__)


PARSE_ERROR_TAG = "PARSE_ERROR"
PARSE_ERROR_REASONING = "Failed to parse AI response"

# (result field, source keys); the first non-empty key wins
ROUTING_KEYS: list[tuple[str, tuple[str, ...]]] = [
    ("tag", ("tag",)),
    ("assigned_to", ("assignedTo",)),
    ("priority", ("priority",)),
    ("triage_type", ("triageType", "pTriageType")),
    ("area_path", ("areaPath",)),
]
# (result field, source key)
SERVICE_KEYS = [("name", "name"), ("solution_area", "solutionArea"), ("dri", "dri")]
REQUESTOR_KEYS = [("email", "email"), ("name", "name"), ("title", "title"), ("team", "team")]
MILESTONE_KEYS = [("status", "status"), ("reason", "reason"), ("commitment", "commitment")]

# Labeled free-text patterns: (group, field, pattern)
TEXT_LABELS: list[tuple[str, str, re.Pattern]] = [
    ("routing", "tag", re.compile(r"Routing Tag:\s*([^\n]+)", re.IGNORECASE)),
    ("routing", "assigned_to", re.compile(r"Assigned To:\s*([^\n]+)", re.IGNORECASE)),
    ("service", "name", re.compile(r"Service:\s*([^\n]+)", re.IGNORECASE)),
    ("service", "solution_area", re.compile(r"Solution Area:\s*([^\n]+)", re.IGNORECASE)),
    ("requestor", "email", re.compile(r"Requestor Identity:\s*(\S+)", re.IGNORECASE)),
    ("milestone", "status", re.compile(r"Milestone Status:\s*([^\n]+)", re.IGNORECASE)),
]

# Section runs until a blank line, a markdown heading or the end of text
_REASONING_SECTION_RE = re.compile(
    r"Routing Reasoning:\s*\n(.*?)(?=\n\n|###|\Z)",
    re.IGNORECASE | re.DOTALL,
)
_BULLET_RE = re.compile(r"[*-]\s*([^\n]+)")


def _reject_constant(name: str) -> Any:
    """NaN and Infinity are not valid JSON."""
    raise ValueError(f"Invalid JSON constant: {name}")


def find_json_span(content: str) -> Optional[str]:
    """
    Return the text from the first ``{`` to the last ``}``.

    The match is greedy, not brace-balanced: prose containing stray braces
    around a JSON block widens the span.
    """
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end < start:
        return None
    return content[start:end + 1]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_text(value: Any) -> Optional[str]:
    """Render a JSON scalar as text; falsy values count as missing."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _as_text_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [item if isinstance(item, str) else json.dumps(item, ensure_ascii=False) for item in value]
    return [_as_text(value)]


def _read_group(source: dict[str, Any], keys: list[tuple[str, str]]) -> dict[str, Optional[str]]:
    return {field: _as_text(source.get(key)) for field, key in keys}


def parse_json_response(parsed: dict[str, Any], content: str) -> RoutingResult:
    """
    Map a parsed JSON object onto a RoutingResult.

    Every top-level group is optional. Routing fields stay ``None`` when
    missing or falsy; service, requestor and milestone fields fall back to
    ``UNKNOWN`` one field at a time.
    """
    routing_src = _as_dict(parsed.get("routing"))
    routing = {}
    for field, keys in ROUTING_KEYS:
        routing[field] = next(
            (text for text in (_as_text(routing_src.get(key)) for key in keys) if text),
            None,
        )

    return RoutingResult(
        routing=RoutingDecision(**routing),
        service=ServiceSummary(**_read_group(_as_dict(parsed.get("service")), SERVICE_KEYS)),
        requestor=RequestorSummary(**_read_group(_as_dict(parsed.get("requestor")), REQUESTOR_KEYS)),
        milestone=MilestoneSummary(**_read_group(_as_dict(parsed.get("milestone")), MILESTONE_KEYS)),
        reasoning=_as_text_list(parsed.get("reasoning")),
        ask=_as_text_list(parsed.get("ask")),
        raw_completion_text=content,
        full_json=parsed,
    )


def parse_text_response(content: str) -> RoutingResult:
    """
    Extract routing fields from labeled free text.

    Labels are matched case-insensitively anywhere in the text and capture
    the rest of their line. Labels that are absent leave their field unset.
    """
    groups: dict[str, dict[str, str]] = {
        "routing": {},
        "service": {},
        "requestor": {},
        "milestone": {},
    }

    for group, field, pattern in TEXT_LABELS:
        match = pattern.search(content)
        if match:
            groups[group][field] = match.group(1).strip()

    reasoning: list[str] = []
    section = _REASONING_SECTION_RE.search(content)
    if section:
        reasoning = [bullet.strip() for bullet in _BULLET_RE.findall(section.group(1))]

    return RoutingResult(
        routing=RoutingDecision(**groups["routing"]),
        service=ServiceSummary(**groups["service"]),
        requestor=RequestorSummary(**groups["requestor"]),
        milestone=MilestoneSummary(**groups["milestone"]),
        reasoning=reasoning,
        ask=[],
        raw_completion_text=content,
    )


def parse_error_result(content: str, error: Exception) -> RoutingResult:
    """Build the PARSE_ERROR result for an unparseable completion."""
    return RoutingResult(
        routing=RoutingDecision(tag=PARSE_ERROR_TAG),
        reasoning=[PARSE_ERROR_REASONING],
        ask=[],
        raw_completion_text=content,
        parse_error=str(error),
    )


def normalize_completion(content: Optional[str]) -> RoutingResult:
    """
    Parse a raw completion into a RoutingResult.

    Args:
        content: Raw model output (JSON, JSON wrapped in prose, or free text).

    Returns:
        RoutingResult; never raises for malformed content.
    """
    content = content or ""
    span = find_json_span(content)

    if span is None:
        logger.debug("No JSON object in completion, scanning labeled text")
        return parse_text_response(content)

    try:
        parsed = json.loads(span, parse_constant=_reject_constant)
        result = parse_json_response(parsed, content)
    except (ValueError, RecursionError) as e:
        logger.error(f"Error parsing AI response: {e}")
        return parse_error_result(content, e)

    logger.debug(f"Parsed JSON completion with routing tag {result.routing.tag!r}")
    return result
