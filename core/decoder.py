"""
Decoding of backend responses into Exercise values.

Each backend answers in its own JSON shape. decode_response dispatches on
the structure of the payload and normalizes everything into a flat list
of exercises. A single malformed exercise fails the whole response with
DecodeError; the pipeline then skips that segment.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from core.dto.analysis import DEFAULT_EXERCISE_NUMBER, DEFAULT_INPUT_MODE, Exercise
from core.errors import DecodeError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("type", "fullContent", "startY", "endY")

# Cloud section bounds are integer thousandths of the page height
SECTION_SCALE = 1000.0

# Answer widget reported by the multi-agent backend -> exercise kind
INPUT_TYPE_KINDS = {
    "math_canvas": "mathematical",
    "drawing_canvas": "diagram",
    "text_area": "essay",
    "text_input": "short_answer",
    "inline": "fill_in_blanks",
    "multiple_choice": "multiple_choice",
}


def _bounds(start: Any, end: Any, label: str) -> tuple:
    try:
        start_y, end_y = float(start), float(end)
    except (TypeError, ValueError):
        raise DecodeError(f"{label}: bounds must be numbers (got {start!r}, {end!r})")

    if start_y > end_y:
        logger.debug(f"[DECODE] {label}: swapping inverted bounds {start_y:.3f} > {end_y:.3f}")
        start_y, end_y = end_y, start_y
    if start_y == end_y:
        raise DecodeError(f"{label}: empty vertical range at {start_y:.3f}")
    return start_y, end_y


def _exercise_number(value: Any) -> str:
    if value is None:
        return DEFAULT_EXERCISE_NUMBER
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or DEFAULT_EXERCISE_NUMBER


def decode_exercise(data: Dict[str, Any]) -> Exercise:
    """Decode one exercise in the canonical wire format.

    Args:
        data: Mapping with type, fullContent, startY, endY and optional
            exerciseNumber, subject and inputType

    Returns:
        Exercise

    Raises:
        DecodeError: If a required field is missing or the bounds are unusable
    """
    if not isinstance(data, dict):
        raise DecodeError(f"Exercise must be an object, got {type(data).__name__}")

    missing = [name for name in REQUIRED_FIELDS if data.get(name) is None]
    if missing:
        raise DecodeError(f"Exercise is missing required fields: {', '.join(missing)}")

    number = _exercise_number(data.get("exerciseNumber"))
    start_y, end_y = _bounds(data["startY"], data["endY"], f"Exercise {number}")

    return Exercise(
        exercise_number=number,
        kind=str(data["type"]),
        content=str(data["fullContent"]),
        start_y=start_y,
        end_y=end_y,
        subject=data.get("subject"),
        input_mode=data.get("inputType") or DEFAULT_INPUT_MODE,
    )


def extract_exercise_number(title: str) -> str:
    """Digits of a section title ("Exercise 12" -> "12"), else "1"."""
    digits = "".join(re.findall(r"\d", title or ""))
    return digits or "1"


def infer_exercise_kind(content: str) -> str:
    """Guess the exercise kind from its wording."""
    lower = (content or "").lower()

    if "multiple choice" in lower or "choose" in lower:
        return "multiple_choice"
    if "true" in lower and "false" in lower:
        return "true_or_false"
    if "fill in" in lower or "complete" in lower:
        return "fill_in_blanks"
    if "draw" in lower or "diagram" in lower:
        return "diagram"
    if "prove" in lower or "proof" in lower:
        return "proof"
    if "calculate" in lower or "compute" in lower:
        return "calculation"
    return "mathematical"


def wrap_latex(content: str) -> str:
    """Wrap bare LaTeX fractions in inline math delimiters."""
    if "\\frac" in content and not content.startswith("\\("):
        return f"\\({content}\\)"
    return content


def decode_sections(data: Dict[str, Any]) -> List[Exercise]:
    """Decode a single-agent cloud response (summary + sections)."""
    sections = data.get("sections")
    if not isinstance(sections, list):
        raise DecodeError("Cloud response 'sections' must be a list")

    exercises = []
    for index, section in enumerate(sections):
        if not isinstance(section, dict):
            raise DecodeError(f"Section {index} must be an object")
        if str(section.get("type", "")).upper() != "EXERCISE":
            continue

        content = section.get("content")
        if content is None or section.get("yStart") is None or section.get("yEnd") is None:
            raise DecodeError(f"Section {index} is missing content or position")

        title = section.get("title") or ""
        number = extract_exercise_number(title)
        start, end = section["yStart"], section["yEnd"]
        try:
            start, end = float(start) / SECTION_SCALE, float(end) / SECTION_SCALE
        except (TypeError, ValueError):
            raise DecodeError(f"Section {index}: bounds must be numbers")
        start_y, end_y = _bounds(start, end, f"Section {index}")

        exercises.append(
            Exercise(
                exercise_number=number,
                kind=infer_exercise_kind(str(content)),
                content=wrap_latex(str(content)),
                start_y=start_y,
                end_y=end_y,
                subject=section.get("subject"),
                input_mode=section.get("inputType") or DEFAULT_INPUT_MODE,
            )
        )

    logger.debug(f"[DECODE] Cloud response: {len(exercises)} exercises from {len(sections)} sections")
    return exercises


def decode_agentic(data: Dict[str, Any]) -> List[Exercise]:
    """Decode a multi-agent cloud response (routing + analysis + metadata).

    Practice exercises generated by the backend have no position on the
    page and are not returned.
    """
    analysis = data.get("analysis")
    if not isinstance(analysis, dict) or not isinstance(analysis.get("exercises"), list):
        raise DecodeError("Agentic response is missing 'analysis.exercises'")

    routing = data.get("routing") or {}
    default_subject = routing.get("subject") or analysis.get("subject")

    exercises = []
    for index, item in enumerate(analysis["exercises"]):
        if not isinstance(item, dict):
            raise DecodeError(f"Agentic exercise {index} must be an object")

        content = item.get("questionLatex") or item.get("questionText")
        position = item.get("position") or {}
        if content is None or position.get("startY") is None or position.get("endY") is None:
            raise DecodeError(f"Agentic exercise {index} is missing question text or position")

        number = _exercise_number(item.get("exerciseNumber"))
        start_y, end_y = _bounds(position["startY"], position["endY"], f"Exercise {number}")
        input_type = item.get("inputType")
        kind = item.get("exerciseType") or INPUT_TYPE_KINDS.get(input_type, "other")

        exercises.append(
            Exercise(
                exercise_number=number,
                kind=kind,
                content=str(content),
                start_y=start_y,
                end_y=end_y,
                subject=item.get("subject") or default_subject,
                input_mode=input_type or DEFAULT_INPUT_MODE,
            )
        )

    metadata = data.get("metadata") or {}
    agents = metadata.get("agentsInvoked")
    if agents:
        logger.info(f"[DECODE] Agentic response from agents: {', '.join(map(str, agents))}")
    return exercises


def decode_payload(payload: Any) -> List[Exercise]:
    """Decode an already-parsed JSON payload, dispatching on its shape."""
    if isinstance(payload, list):
        return [decode_exercise(item) for item in payload]

    if not isinstance(payload, dict):
        raise DecodeError(f"Unexpected JSON payload of type {type(payload).__name__}")

    # Segment wrapper: {"type": "exercise"|"skip", "exercise": {...}}
    if "exercise" in payload and payload.get("type") in ("exercise", "skip"):
        if payload["type"] == "skip" or payload["exercise"] is None:
            return []
        return [decode_exercise(payload["exercise"])]
    if payload.get("type") == "skip":
        return []

    if isinstance(payload.get("analysis"), dict):
        return decode_agentic(payload)

    if "sections" in payload:
        return decode_sections(payload)

    if "exercises" in payload:
        items = payload["exercises"]
        if not isinstance(items, list):
            raise DecodeError("'exercises' must be a list")
        return [decode_exercise(item) for item in items]

    return [decode_exercise(payload)]


def decode_response(text: Optional[str]) -> List[Exercise]:
    """Decode a sanitized backend response into exercises.

    Args:
        text: JSON text (already passed through sanitize_response)

    Returns:
        List of exercises, possibly empty

    Raises:
        DecodeError: If the text is not valid JSON or any exercise is malformed
    """
    if not text or not text.strip():
        raise DecodeError("Empty response")

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON in response: {e}")

    return decode_payload(payload)
