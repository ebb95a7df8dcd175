import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from exercita.config import settings

logger = logging.getLogger(__name__)


def get_app_timezone() -> ZoneInfo:
    try:
        return ZoneInfo(settings.APP_TIMEZONE)
    except ZoneInfoNotFoundError:
        logger.warning("Invalid APP_TIMEZONE '%s'; falling back to UTC", settings.APP_TIMEZONE)
        return ZoneInfo("UTC")


def parse_timezone(name: str | None) -> ZoneInfo:
    """Resolve a caller-supplied IANA zone name, defaulting to the app timezone.

    Raises ``ValueError`` for unknown names so routers can turn it into a 400.
    """
    if not name:
        return get_app_timezone()
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc
