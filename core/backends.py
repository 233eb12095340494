"""
Analysis backend definitions.

This module defines the classification backends the analysis router can
select. A backend is a pure selection value, not a live connection; the
classifier client owns the actual sessions.
"""

from enum import Enum


class AnalysisBackend(Enum):
    """Classification backends for homework analysis.

    Backends:
    - ON_DEVICE: Local vision model, free, processes one segment at a time
    - CLOUD_SINGLE_AGENT: Remote single-agent analysis (subscription)
    - CLOUD_MULTI_AGENT: Remote multi-agent analysis with subject routing (subscription)

    Usage:
        from core.backends import AnalysisBackend

        backend = decide_backend(routing_config)
        raw = await classifier.classify(region, blocks, backend)
    """

    ON_DEVICE = "on_device"
    CLOUD_SINGLE_AGENT = "cloud_single_agent"
    CLOUD_MULTI_AGENT = "cloud_multi_agent"

    def __str__(self) -> str:
        return self.value

    @property
    def description(self) -> str:
        """Human-readable service label."""
        descriptions = {
            AnalysisBackend.ON_DEVICE: "On-Device Model",
            AnalysisBackend.CLOUD_SINGLE_AGENT: "Cloud (Single Agent)",
            AnalysisBackend.CLOUD_MULTI_AGENT: "Cloud (Multi-Agent)",
        }
        return descriptions.get(self, "Unknown backend")

    @property
    def is_cloud(self) -> bool:
        return self is not AnalysisBackend.ON_DEVICE

    @property
    def requires_subscription(self) -> bool:
        return self.is_cloud

    @classmethod
    def from_string(cls, value: str) -> "AnalysisBackend":
        """Convert string to AnalysisBackend enum.

        Args:
            value: String value (e.g., "on_device", "cloud_multi_agent")

        Returns:
            AnalysisBackend enum

        Raises:
            ValueError: If value is not a valid backend
        """
        try:
            return cls(value)
        except ValueError:
            valid = [b.value for b in cls]
            raise ValueError(f"Invalid analysis backend '{value}'. Valid backends: {', '.join(valid)}")
