"""
Analysis Router for backend selection.

This module decides which classification backend handles an analysis run.
The decision itself is a pure function over an explicit RoutingConfig
snapshot, so every branch of the priority table can be tested without
touching settings, subscriptions or the local model.

Priority (business policy, must not be reordered):
1. Multi-agent cloud analysis (agentic enabled + subscription)
2. Single-agent cloud analysis (cloud enabled + subscription)
3. On-device model (when available)
4. Single-agent cloud analysis as a degraded fallback (needs a subscription
   elsewhere; surfaced by the caller)
"""

import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from config import Config
from core.backends import AnalysisBackend

logger = logging.getLogger(__name__)

ROUTING_FLAGS = (
    "use_agentic_analysis",
    "has_cloud_subscription",
    "use_cloud_analysis",
    "on_device_model_available",
)


@dataclass(frozen=True)
class RoutingConfig:
    """Immutable snapshot of everything the routing decision depends on."""

    use_agentic_analysis: bool = False
    has_cloud_subscription: bool = False
    use_cloud_analysis: bool = False
    on_device_model_available: bool = False

    @classmethod
    def from_settings(cls, on_device_model_available: bool = False) -> "RoutingConfig":
        """Snapshot the environment-backed settings.

        Args:
            on_device_model_available: Result of probing the local model

        Returns:
            RoutingConfig
        """
        return cls(
            use_agentic_analysis=Config.USE_AGENTIC_ANALYSIS,
            has_cloud_subscription=Config.HAS_CLOUD_SUBSCRIPTION,
            use_cloud_analysis=Config.USE_CLOUD_ANALYSIS,
            on_device_model_available=on_device_model_available,
        )

    def to_dict(self) -> Dict[str, bool]:
        return {flag: getattr(self, flag) for flag in ROUTING_FLAGS}


def decide_backend(config: RoutingConfig) -> AnalysisBackend:
    """Choose the analysis backend for a routing snapshot.

    Args:
        config: Routing snapshot

    Returns:
        Selected AnalysisBackend
    """
    if config.use_agentic_analysis and config.has_cloud_subscription:
        logger.info("[ROUTING] Using agentic (multi-agent) cloud analysis")
        return AnalysisBackend.CLOUD_MULTI_AGENT

    if config.use_cloud_analysis and config.has_cloud_subscription:
        logger.info("[ROUTING] Using single-agent cloud analysis")
        return AnalysisBackend.CLOUD_SINGLE_AGENT

    if config.on_device_model_available:
        logger.info("[ROUTING] Using on-device model")
        return AnalysisBackend.ON_DEVICE

    logger.warning(
        "[FALLBACK] On-device model not available, falling back to cloud analysis "
        "(requires subscription)"
    )
    return AnalysisBackend.CLOUD_SINGLE_AGENT


def read_routing_profile(path: Path, profile: Optional[str] = None) -> Dict[str, Optional[bool]]:
    """Read and validate one profile of a routing YAML file.

    Args:
        path: Path to the routing YAML file
        profile: Profile name (defaults to the file's default_profile)

    Returns:
        Dict of routing flags; on_device_model_available is None when the
        profile leaves it to the local model probe

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file or profile is invalid
    """
    if not path.exists():
        raise FileNotFoundError(f"Routing configuration not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse routing YAML: {e}")

    if not isinstance(data, dict) or "profiles" not in data:
        raise ValueError("Invalid routing configuration: missing 'profiles' key")

    profile = profile or data.get("default_profile")
    if profile not in data["profiles"]:
        available = ", ".join(data["profiles"].keys())
        raise ValueError(f"Routing profile '{profile}' not found. Available profiles: {available}")

    values = data["profiles"][profile] or {}
    unknown = set(values) - set(ROUTING_FLAGS)
    if unknown:
        logger.warning(
            f"Ignoring unknown routing keys in profile '{profile}': {', '.join(sorted(unknown))}"
        )

    flags = {}
    for flag in ROUTING_FLAGS:
        value = values.get(flag)
        if value is None:
            value = None if flag == "on_device_model_available" else False
        elif not isinstance(value, bool):
            raise ValueError(f"Routing flag '{flag}' in profile '{profile}' must be true or false")
        flags[flag] = value

    logger.debug(f"Loaded routing profile '{profile}' from {path}: {flags}")
    return flags


def load_routing_config(
    path: Path,
    profile: Optional[str] = None,
    on_device_model_available: Optional[bool] = None,
) -> RoutingConfig:
    """Load a routing snapshot from a YAML profiles file.

    Args:
        path: Path to the routing YAML file
        profile: Profile name (defaults to the file's default_profile)
        on_device_model_available: Probe result, used when the profile
            does not pin the on-device flag

    Returns:
        RoutingConfig

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file or profile is invalid
    """
    flags = read_routing_profile(path, profile)
    if flags["on_device_model_available"] is None:
        flags["on_device_model_available"] = bool(on_device_model_available)
    return RoutingConfig(**flags)


@dataclass(frozen=True)
class RoutingDecision:
    """Outcome of a routing pass."""

    backend: AnalysisBackend
    config: RoutingConfig

    @property
    def is_fallback(self) -> bool:
        """True when cloud analysis was forced without an active subscription."""
        return self.backend.requires_subscription and not self.config.has_cloud_subscription


class AnalysisRouter:
    """
    Builds routing snapshots and decides the backend for each run.

    The on-device probe runs only when the snapshot source does not pin
    the on-device flag, and after the profile has been validated. Probes
    may be plain callables (for synchronous callers such as the `route`
    command) or coroutine functions (for route_async inside a running
    event loop).

    Usage:
        router = AnalysisRouter(on_device_probe=classifier.is_on_device_available_async)
        decision = await router.route_async()
        outcome = await SegmentPipeline(classifier, decision.backend).analyze(blocks, image)
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        profile: Optional[str] = None,
        on_device_probe: Optional[Callable[[], Any]] = None,
    ):
        """Initialize router.

        Args:
            config_path: Routing YAML file; when None, environment settings are used
            profile: Profile name inside the YAML file
            on_device_probe: Callable (or coroutine function) reporting whether
                the local model is usable
        """
        self.config_path = config_path
        self.profile = profile
        self.on_device_probe = on_device_probe

    def _pinned_flags(self) -> Dict[str, Optional[bool]]:
        if self.config_path is not None:
            return read_routing_profile(self.config_path, self.profile)
        flags = RoutingConfig.from_settings().to_dict()
        flags["on_device_model_available"] = None
        return flags

    def _probe_on_device(self) -> bool:
        if self.on_device_probe is None:
            return False
        try:
            result = self.on_device_probe()
            if inspect.isawaitable(result):
                close = getattr(result, "close", None)
                if close is not None:
                    close()
                raise TypeError("asynchronous on-device probe requires route_async()")
            return bool(result)
        except Exception as e:
            logger.warning(f"[ROUTING] On-device availability probe failed: {e}")
            return False

    async def _probe_on_device_async(self) -> bool:
        if self.on_device_probe is None:
            return False
        try:
            result = self.on_device_probe()
            if inspect.isawaitable(result):
                result = await result
            return bool(result)
        except Exception as e:
            logger.warning(f"[ROUTING] On-device availability probe failed: {e}")
            return False

    def snapshot(self) -> RoutingConfig:
        """Take a fresh routing snapshot."""
        flags = self._pinned_flags()
        if flags["on_device_model_available"] is None:
            flags["on_device_model_available"] = self._probe_on_device()
        return RoutingConfig(**flags)

    async def snapshot_async(self) -> RoutingConfig:
        """Take a fresh routing snapshot without blocking the event loop."""
        flags = self._pinned_flags()
        if flags["on_device_model_available"] is None:
            flags["on_device_model_available"] = await self._probe_on_device_async()
        return RoutingConfig(**flags)

    def _decide(self, config: RoutingConfig) -> RoutingDecision:
        backend = decide_backend(config)
        decision = RoutingDecision(backend=backend, config=config)

        if decision.is_fallback:
            logger.warning(
                f"[WARNING] '{backend}' selected without an active cloud subscription"
            )
        return decision

    def route(self, config: Optional[RoutingConfig] = None) -> RoutingDecision:
        """Decide the backend for one analysis run.

        Args:
            config: Explicit snapshot (a fresh one is taken when None)

        Returns:
            RoutingDecision

        Raises:
            FileNotFoundError, ValueError: If the routing profile cannot be loaded
        """
        if config is None:
            config = self.snapshot()
        return self._decide(config)

    async def route_async(self, config: Optional[RoutingConfig] = None) -> RoutingDecision:
        """Async variant of route() for callers inside an event loop."""
        if config is None:
            config = await self.snapshot_async()
        return self._decide(config)
