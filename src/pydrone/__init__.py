"""pydrone - Shared vehicle state synchronization for multi-operator drone consoles."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pydrone")
except PackageNotFoundError:
    __version__ = "0+local"
from pydrone._store import StoreClient, create_store
from pydrone._store.memory import InMemoryBackend, InMemoryStore
from pydrone.alerts import AlertLog, BatteryWatch
from pydrone.bridge import SyncBridge
from pydrone.client import DroneClient
from pydrone.config import DroneConfig
from pydrone.dispatcher import CommandDispatcher
from pydrone.exceptions import (
    DroneClientError,
    DroneConfigError,
    DroneError,
    StoreError,
    StoreTransportError,
    StoreUnavailableError,
)
from pydrone.keymap import KeyEvent, KeyResult
from pydrone.models import (
    AlertEntry,
    AlertType,
    BatteryStatus,
    CameraView,
    ControlIntent,
    Direction,
    DroneMode,
    FlightMode,
    IntentKind,
    Rotation,
    ThrottleStep,
    VehicleState,
)
from pydrone.simulator import DriftProfile, DynamicsSimulator, NoiseSource
from pydrone.state.events import StateSection, StateUpdate, UpdateSource
from pydrone.state.store import TelemetryModel

__all__ = [
    "AlertEntry",
    "AlertLog",
    "AlertType",
    "BatteryStatus",
    "BatteryWatch",
    "CameraView",
    "CommandDispatcher",
    "ControlIntent",
    "Direction",
    "DriftProfile",
    "DroneClient",
    "DroneClientError",
    "DroneConfig",
    "DroneConfigError",
    "DroneError",
    "DroneMode",
    "DynamicsSimulator",
    "FlightMode",
    "InMemoryBackend",
    "InMemoryStore",
    "IntentKind",
    "KeyEvent",
    "KeyResult",
    "NoiseSource",
    "Rotation",
    "StateSection",
    "StateUpdate",
    "StoreClient",
    "StoreError",
    "StoreTransportError",
    "StoreUnavailableError",
    "SyncBridge",
    "TelemetryModel",
    "ThrottleStep",
    "UpdateSource",
    "VehicleState",
    "__version__",
]
