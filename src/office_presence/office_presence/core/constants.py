"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

EARTH_RADIUS_METERS = 6_371_000
DEFAULT_ATTENDANCE_RADIUS_METERS = 200
DEFAULT_NEARBY_OFFICES_MAX_DISTANCE_METERS = 5000
DEFAULT_LOCATION_REQUEST_TTL_HOURS = 24
DEFAULT_SESSION_DAYS = 7

DEFAULT_PAGE = 1
DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100

MIN_PASSWORD_LENGTH = 6
MAX_GOODS_TYPE_LENGTH = 100
MAX_LOCATION_REASON_LENGTH = 500
MAX_PHONE_LENGTH = 15
