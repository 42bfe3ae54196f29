"""Client configuration for pydrone."""

from __future__ import annotations

import dataclasses
import os
import secrets
from typing import Any, Literal

from pydrone._constants import DEFAULT_ROOT, LOW_BATTERY_THRESHOLD, THROTTLE_MAX, THROTTLE_MIN
from pydrone.exceptions import DroneConfigError

StoreBackend = Literal["memory", "rest", "mqtt"]

_STORE_BACKENDS: frozenset[str] = frozenset({"memory", "rest", "mqtt"})


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _default_client_id() -> str:
    return f"pydrone-{secrets.token_hex(4)}"


@dataclasses.dataclass(frozen=True)
class DroneConfig:
    """Client configuration.

    Parameters
    ----------
    store_backend : str
        Which shared store to use: ``"memory"`` (in-process), ``"rest"``
        (realtime-database style REST + event stream) or ``"mqtt"``
        (retained messages on a broker).
    store_url : str
        Base URL of the REST store (e.g. ``"https://example.firebaseio.com"``).
    store_auth : str or None
        Auth token appended as ``?auth=`` to REST requests.
    store_root : str
        Key-path root under which the four key groups live.
    store_timeout : float
        Seconds before a single store request is abandoned.
    mqtt_host : str
        MQTT broker host.
    mqtt_port : int
        MQTT broker port.
    mqtt_username : str or None
        MQTT username.
    mqtt_password : str or None
        MQTT password.
    mqtt_tls : bool
        Enable TLS for the MQTT connection.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_topic_prefix : str
        Topic prefix every key path is published under.
    mqtt_read_settle : float
        Seconds a one-shot read waits for retained messages to arrive.
    client_id : str
        Identifier of this operator client (MQTT client id, alert origin).
    simulate : bool
        Run the dynamics simulator on this client.
    tick_interval : float
        Simulator cadence in seconds.
    connect_delay : float
        Seconds until the connection handshake marks the vehicle connected.
    optimistic_ttl : float
        Seconds an unconfirmed local optimistic update masks remote state.
    low_battery_threshold : float
        Battery percentage below which a low-battery alert fires.
    reset_throttle : float
        Throttle target used by reset-throttle and global reset.
    battery_alerts : bool or None
        Emit low-battery alerts from this client. ``None`` follows
        ``simulate`` so only the simulating client writes them.
    """

    store_backend: StoreBackend = "memory"
    store_url: str = ""
    store_auth: str | None = None
    store_root: str = DEFAULT_ROOT
    store_timeout: float = 10.0
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_tls: bool = False
    mqtt_keepalive: int = 60
    mqtt_topic_prefix: str = "pydrone"
    mqtt_read_settle: float = 0.5
    client_id: str = dataclasses.field(default_factory=_default_client_id)
    simulate: bool = True
    tick_interval: float = 0.5
    connect_delay: float = 2.0
    optimistic_ttl: float = 5.0
    low_battery_threshold: float = LOW_BATTERY_THRESHOLD
    reset_throttle: float = 0.0
    battery_alerts: bool | None = None

    def __post_init__(self) -> None:
        if self.store_backend not in _STORE_BACKENDS:
            raise DroneConfigError(
                f"store_backend must be one of {sorted(_STORE_BACKENDS)}, got {self.store_backend!r}"
            )
        if self.store_backend == "rest" and not self.store_url:
            raise DroneConfigError("store_url is required for the rest store backend")
        if self.tick_interval <= 0:
            raise DroneConfigError(f"tick_interval must be positive, got {self.tick_interval}")
        if self.connect_delay < 0:
            raise DroneConfigError(f"connect_delay must not be negative, got {self.connect_delay}")
        if self.optimistic_ttl < 0:
            raise DroneConfigError(f"optimistic_ttl must not be negative, got {self.optimistic_ttl}")
        if not THROTTLE_MIN <= self.reset_throttle <= THROTTLE_MAX:
            raise DroneConfigError(
                f"reset_throttle must be between {THROTTLE_MIN} and {THROTTLE_MAX}, got {self.reset_throttle}"
            )

    @property
    def emits_battery_alerts(self) -> bool:
        """Whether this client appends low-battery alerts."""
        if self.battery_alerts is None:
            return self.simulate
        return self.battery_alerts

    @classmethod
    def from_env(cls, **overrides: Any) -> DroneConfig:
        """Create configuration from ``DRONE_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        DroneConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "DRONE_STORE_BACKEND": "store_backend",
            "DRONE_STORE_URL": "store_url",
            "DRONE_STORE_AUTH": "store_auth",
            "DRONE_STORE_ROOT": "store_root",
            "DRONE_MQTT_HOST": "mqtt_host",
            "DRONE_MQTT_USERNAME": "mqtt_username",
            "DRONE_MQTT_PASSWORD": "mqtt_password",
            "DRONE_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
            "DRONE_CLIENT_ID": "client_id",
        }
        _ENV_FLOAT_MAP = {
            "DRONE_STORE_TIMEOUT": "store_timeout",
            "DRONE_MQTT_READ_SETTLE": "mqtt_read_settle",
            "DRONE_TICK_INTERVAL": "tick_interval",
            "DRONE_CONNECT_DELAY": "connect_delay",
            "DRONE_OPTIMISTIC_TTL": "optimistic_ttl",
            "DRONE_LOW_BATTERY_THRESHOLD": "low_battery_threshold",
            "DRONE_RESET_THROTTLE": "reset_throttle",
        }
        _ENV_INT_MAP = {
            "DRONE_MQTT_PORT": "mqtt_port",
            "DRONE_MQTT_KEEPALIVE": "mqtt_keepalive",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
        except ValueError as exc:
            raise DroneConfigError(f"Invalid numeric environment value: {exc}") from exc

        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("DRONE_MQTT_TLS"), False)
        if "simulate" not in overrides:
            config_kwargs["simulate"] = _env_bool(env.get("DRONE_SIMULATE"), True)

        battery_env = env.get("DRONE_BATTERY_ALERTS")
        if battery_env is not None and "battery_alerts" not in overrides:
            config_kwargs["battery_alerts"] = _env_bool(battery_env, True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
