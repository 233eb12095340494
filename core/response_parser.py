"""
Tolerant extraction of JSON payloads from model responses.

Model output often wraps the JSON in prose or markdown fences and writes
LaTeX with single backslashes, which JSON either rejects (``\\(``,
``\\sqrt``) or silently misreads (``\\frac`` starts with the form-feed
escape). These helpers recover a decodable payload without ever raising.

The repair is lossy. Several tokens begin with a JSON escape letter
(``\\t`` in ``tan``/``text``/``times``/``theta``, ``\\b`` in ``beta``,
``\\f`` in ``frac``, ``\\n`` in ``neq``, ``\\r`` in ``right``), so a real
escape followed by those letters is rewritten as well: ``"Name:\\tanswer"``
decodes to a literal backslash-t followed by ``answer`` instead of a tab.
"""

import logging
import re

logger = logging.getLogger(__name__)

# LaTeX tokens written with a single backslash that must be doubled.
LATEX_TOKENS = (
    "frac",
    "sqrt",
    "times",
    "cdot",
    "div",
    "pm",
    "leq",
    "geq",
    "neq",
    "approx",
    "infty",
    "alpha",
    "beta",
    "theta",
    "pi",
    "sum",
    "int",
    "lim",
    "log",
    "sin",
    "cos",
    "tan",
    "left",
    "right",
    "text",
    "quad",
)
LATEX_DELIMITERS = (r"\(", r"\)", r"\[", r"\]")

_ESCAPE_PATTERN = re.compile(r"\\(" + "|".join(LATEX_TOKENS + LATEX_DELIMITERS) + r")")


def strip_code_fences(text: str) -> str:
    """Return the body of the first markdown code block, or the text unchanged."""
    if "```json" in text:
        start = text.find("```json") + 7
    elif "```" in text:
        start = text.find("```") + 3
    else:
        return text

    end = text.find("```", start)
    if end == -1:
        end = len(text)
    return text[start:end].strip()


def extract_json(text: str) -> str:
    """
    Slice the outermost JSON container out of a model response.

    An array is taken (first "[" to last "]") when it is the outermost
    value, i.e. it opens before any object; otherwise the object from the
    first "{" to the last "}". Text without a container comes back
    unchanged.

    Args:
        text: Raw model response

    Returns:
        JSON candidate text
    """
    if not text:
        return text

    body = strip_code_fences(text)

    array_start = body.find("[")
    array_end = body.rfind("]")
    object_start = body.find("{")
    object_end = body.rfind("}")

    array_outermost = array_start != -1 and (object_start == -1 or array_start < object_start)
    if array_outermost and array_end > array_start:
        return body[array_start : array_end + 1]

    if object_start != -1 and object_end > object_start:
        return body[object_start : object_end + 1]

    logger.debug("[DECODE] No JSON container found in response")
    return text


def repair_escapes(text: str) -> str:
    """
    Double single backslashes in front of known LaTeX tokens.

    One pass over a fixed table. Already doubled backslashes are not
    recognized and come out corrupted.
    """
    return _ESCAPE_PATTERN.sub(r"\\\\\1", text)


def sanitize_response(text: str) -> str:
    """Extract the JSON container and repair its LaTeX escapes."""
    return repair_escapes(extract_json(text))
