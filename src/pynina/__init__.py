"""pynina - Unified observatory state for NINA-driven dashboards."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pynina")
except PackageNotFoundError:
    __version__ = "0+local"
from pynina._socket import ConnectionState, ControllerSocketClient
from pynina.config import NinaConfig
from pynina.exceptions import (
    NinaApiError,
    NinaConfigError,
    NinaDecodeError,
    NinaError,
    NinaTransportError,
)
from pynina.ingestion.history import HistorySeeder, HistorySource
from pynina.ingestion.normalizer import EventNormalizer
from pynina.models import (
    EquipmentDevice,
    EquipmentStatus,
    EquipmentType,
    RecentEvent,
    Session,
    SessionPatch,
    StateChange,
    StateEnvelope,
    SystemStatus,
    UnifiedState,
    UpdateKind,
)
from pynina.state.manager import RECENT_EVENT_LIMIT, StateManager
from pynina.system import ObservatoryStateSystem

__all__ = [
    "RECENT_EVENT_LIMIT",
    "ConnectionState",
    "ControllerSocketClient",
    "EquipmentDevice",
    "EquipmentStatus",
    "EquipmentType",
    "EventNormalizer",
    "HistorySeeder",
    "HistorySource",
    "NinaApiError",
    "NinaConfig",
    "NinaConfigError",
    "NinaDecodeError",
    "NinaError",
    "NinaTransportError",
    "ObservatoryStateSystem",
    "RecentEvent",
    "Session",
    "SessionPatch",
    "StateChange",
    "StateEnvelope",
    "StateManager",
    "SystemStatus",
    "UnifiedState",
    "UpdateKind",
    "__version__",
]
