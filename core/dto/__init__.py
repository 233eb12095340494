"""Data Transfer Objects for homework analysis."""

from .analysis import (
    DEFAULT_EXERCISE_NUMBER,
    DEFAULT_INPUT_MODE,
    AnalysisResult,
    Exercise,
    OCRBlock,
    Segment,
)

__all__ = [
    # Defaults
    "DEFAULT_EXERCISE_NUMBER",
    "DEFAULT_INPUT_MODE",
    # Analysis DTOs
    "OCRBlock",
    "Segment",
    "Exercise",
    "AnalysisResult",
]
