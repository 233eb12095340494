"""Analysis-related Data Transfer Objects.

Value types flowing through the segmentation and analysis pipeline.
Vertical positions are normalized to [0, 1] with larger values higher
on the page (bottom-left origin, as reported by document OCR engines).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_EXERCISE_NUMBER = "Unknown"
DEFAULT_INPUT_MODE = "canvas"


@dataclass(frozen=True)
class OCRBlock:
    """OCR text block with its normalized vertical position.

    Attributes:
        text: Recognized text of the block
        y: Normalized vertical position (0 = bottom, 1 = top)
    """

    text: str
    y: float

    def __post_init__(self):
        # Also rejects NaN
        if not 0.0 <= self.y <= 1.0:
            raise ValueError(
                f"OCR block y must be normalized to [0, 1] (got {self.y!r} for {self.text[:40]!r})"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OCRBlock":
        """Build a block from a ``{"text", "y"}`` mapping."""
        return cls(text=str(data["text"]), y=float(data["y"]))


@dataclass
class Segment:
    """Contiguous vertical slice of a page with its OCR blocks.

    Segments are ephemeral: created per analysis run and discarded once
    classified.

    Attributes:
        start_y: Lower bound of the slice
        end_y: Upper bound of the slice
        blocks: OCR blocks inside the slice, ascending by y
        region_image: Cropped image handle for the slice (None for text-only runs)
    """

    start_y: float
    end_y: float
    blocks: List[OCRBlock] = field(default_factory=list)
    region_image: Any = None

    def __post_init__(self):
        if not self.start_y < self.end_y:
            raise ValueError(
                f"Segment requires start_y < end_y (got {self.start_y:.3f} >= {self.end_y:.3f})"
            )

    @property
    def height(self) -> float:
        return self.end_y - self.start_y

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.blocks)


@dataclass(frozen=True)
class Exercise:
    """Exercise detected on a homework page.

    Attributes:
        exercise_number: Identifier printed on the page ("1", "2a", ...)
        kind: Exercise type label (mathematical, multiple_choice, essay, ...)
        content: Full exercise text
        start_y: Lower bound of the exercise on the page
        end_y: Upper bound of the exercise on the page
        subject: Optional subject (mathematics, language, science, ...)
        input_mode: How the student answers (canvas, text, math_canvas, ...)
    """

    exercise_number: str
    kind: str
    content: str
    start_y: float
    end_y: float
    subject: Optional[str] = None
    input_mode: str = DEFAULT_INPUT_MODE

    def __post_init__(self):
        if not self.end_y > self.start_y:
            raise ValueError(
                f"Exercise {self.exercise_number} requires end_y > start_y "
                f"(got start_y={self.start_y:.3f}, end_y={self.end_y:.3f})"
            )

    @property
    def number(self) -> str:
        return self.exercise_number

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the wire field names."""
        return {
            "exerciseNumber": self.exercise_number,
            "type": self.kind,
            "fullContent": self.content,
            "startY": self.start_y,
            "endY": self.end_y,
            "subject": self.subject,
            "inputType": self.input_mode,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Exercises found on a page, in reading order (top of page first)."""

    exercises: Tuple[Exercise, ...] = ()

    @classmethod
    def from_exercises(cls, exercises: List[Exercise]) -> "AnalysisResult":
        """Build a result ordered by start_y descending.

        The sort is stable, so exercises sharing a start_y keep the order
        in which they were collected.
        """
        ordered = sorted(exercises, key=lambda ex: ex.start_y, reverse=True)
        return cls(exercises=tuple(ordered))

    def __len__(self) -> int:
        return len(self.exercises)

    def to_dict(self) -> Dict[str, Any]:
        return {"exercises": [ex.to_dict() for ex in self.exercises]}
