"""Settings shared by every environment, read from the process environment."""

import os


def env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "office_presence"),
}

# Geofence radius for attendance marks.
ATTENDANCE_RADIUS_METERS = float(os.getenv("ATTENDANCE_RADIUS_METERS", "200"))
# Pending location requests older than this are expired on next access.
LOCATION_REQUEST_TTL_HOURS = float(os.getenv("LOCATION_REQUEST_TTL_HOURS", "24"))
NEARBY_OFFICES_MAX_DISTANCE_METERS = float(os.getenv("NEARBY_OFFICES_MAX_DISTANCE_METERS", "5000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = env_bool("LOG_JSON")
