"""Custom exception hierarchy for pydrone."""

from __future__ import annotations


class DroneError(Exception):
    """Base exception for all pydrone errors."""


class DroneConfigError(DroneError):
    """Invalid or missing configuration."""


class DroneClientError(DroneError):
    """Client used outside of its started lifetime."""


class StoreError(DroneError):
    """Shared store read/write/subscribe failure."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class StoreUnavailableError(StoreError):
    """Store backend is not reachable (not connected, closed, or offline)."""


class StoreTransportError(StoreError):
    """HTTP/MQTT level failure (network, non-2xx, invalid JSON, publish error)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str = "",
    ) -> None:
        self.status_code = status_code
        super().__init__(message, path=path)
