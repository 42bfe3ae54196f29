"""Internal constants shared across the library."""

DEFAULT_ROOT = "drone"

TELEMETRY_KEY = "telemetry"
CONTROLS_KEY = "controls"
CAMERA_VIEW_KEY = "cameraView"
ALERTS_KEY = "alerts"

# ------------------------------------------------------------------
# Normalization bounds
# ------------------------------------------------------------------

ANGLE_MODULUS = 360.0
THROTTLE_MIN = 0.0
THROTTLE_MAX = 100.0
BATTERY_LEVEL_MIN = 0.0
BATTERY_LEVEL_MAX = 100.0
BATTERY_VOLTS_FLOOR = 14.0

# ------------------------------------------------------------------
# Operator control steps
# ------------------------------------------------------------------

ATTITUDE_STEP_DEG = 5.0
YAW_STEP_DEG = 10.0
THROTTLE_STEP = 5.0

LOW_BATTERY_THRESHOLD = 30.0

# Battery display bands (percent).
BATTERY_GOOD_ABOVE = 50.0
BATTERY_FAIR_ABOVE = 20.0


def key_path(root: str, key: str) -> str:
    """Join a key-path root and a group key (``"drone"`` + ``"telemetry"``)."""
    root = root.strip("/")
    return f"{root}/{key}" if root else key
