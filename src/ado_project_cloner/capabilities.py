"""
Best-effort detection of which project services (Boards, Repos, ...) are switched on.

Detection is pattern matching over heterogeneous key/value data with no
ground truth, so it has an explicit UNKNOWN outcome. UNKNOWN states are
never applied to the target.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .protocols import AdoClient

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

SERVICE_FEATURES: Final[dict[str, str]] = {
    "ms.vss-work.agile": "Boards",
    "ms.vss-code.version-control": "Repos",
    "ms.vss-build.pipelines": "Pipelines",
    "ms.vss-test-web.test": "Test Plans",
    "ms.vss-features.artifacts": "Artifacts",
    "ms.vss-dashboards-web.dashboards": "Dashboards",
    "ms.vss-wiki.wiki": "Wiki",
}

_TRUE_VALUES: Final[frozenset[str]] = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES: Final[frozenset[str]] = frozenset({"false", "0", "no", "off"})
_ENABLED_VISIBILITIES: Final[frozenset[str]] = frozenset({"public", "enabled"})


class ServiceState(StrEnum):
    ENABLED = "enabled"
    DISABLED = "disabled"
    UNKNOWN = "unknown"


def classify_service_state(indicators: Mapping[str, Any]) -> ServiceState:
    """Classify one service from its indicator values.

    Indicators are checked in order: ``enabled`` (true/false), ``state``
    (enabled/disabled), ``visibility`` (public/enabled vs. anything else).
    Missing or unparseable indicators fall through; nothing usable yields
    UNKNOWN.
    """
    lowered = {str(key).lower(): str(value).strip().lower() for key, value in indicators.items() if value is not None}

    enabled = lowered.get("enabled")
    if enabled in _TRUE_VALUES:
        return ServiceState.ENABLED
    if enabled in _FALSE_VALUES:
        return ServiceState.DISABLED

    state = lowered.get("state")
    if state == "enabled":
        return ServiceState.ENABLED
    if state == "disabled":
        return ServiceState.DISABLED

    visibility = lowered.get("visibility")
    if visibility:
        return ServiceState.ENABLED if visibility in _ENABLED_VISIBILITIES else ServiceState.DISABLED

    return ServiceState.UNKNOWN


def _property_indicators(feature_id: str, properties: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    for prop in properties:
        name = str(prop.get("name", ""))
        if feature_id.lower() not in name.lower():
            continue
        value = prop.get("value")
        text = str(value).strip().lower()
        if text in _TRUE_VALUES or text in _FALSE_VALUES:
            return {"enabled": text}
        return {"state": text}
    return {}


def detect_service_states(
    capabilities: Mapping[str, Mapping[str, Any]],
    properties: Iterable[Mapping[str, Any]] = (),
) -> dict[str, ServiceState]:
    """Detect the state of every known service from project capabilities, then project properties.

    Args:
        capabilities: Project capabilities as returned with includeCapabilities
        properties: Project name/value properties

    Returns:
        Feature ID -> ServiceState for every known service
    """
    properties = list(properties)
    states: dict[str, ServiceState] = {}
    for feature_id, service_name in SERVICE_FEATURES.items():
        state = classify_service_state(capabilities.get(feature_id) or {})
        if state is ServiceState.UNKNOWN:
            state = classify_service_state(_property_indicators(feature_id, properties))
        states[feature_id] = state
        logger.debug(f"Service {service_name} detected as {state}")
    return states


def apply_service_states(client: AdoClient, project_id: str, states: Mapping[str, ServiceState]) -> tuple[int, int]:
    """Push known service states to a project. Each failure is logged and skipped.

    Returns:
        (applied, failed) counts
    """
    applied = 0
    failed = 0
    for feature_id, state in states.items():
        if state is ServiceState.UNKNOWN:
            continue
        service_name = SERVICE_FEATURES.get(feature_id, feature_id)
        try:
            client.set_feature_state(project_id, feature_id, enabled=state is ServiceState.ENABLED)
        except Exception as e:
            logger.warning(f"Could not set {service_name} to {state}: {e}")
            failed += 1
            continue
        applied += 1
        logger.info(f"Service {service_name} set to {state}")
    return applied, failed
