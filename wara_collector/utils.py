import logging
from rich.logging import RichHandler
from .config import LOG_FILENAME, LOG_FORMAT, QUIET_LOGGERS, UNKNOWN

def setup_logger(level=logging.INFO, filename=LOG_FILENAME, quiet_loggers=QUIET_LOGGERS):
    """Routes the root logger to the collector log file and a RichHandler console.

    SDK and HTTP loggers in `quiet_loggers` stay at WARNING unless running at DEBUG.
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    # Called again (e.g. from tests): start from a clean slate
    if logger.hasHandlers():
        logger.handlers.clear()

    file_handler = logging.FileHandler(filename, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)

    rich_handler = RichHandler(rich_tracebacks=True, markup=True, show_path=False)
    rich_handler.setLevel(level)
    logger.addHandler(rich_handler)

    logger.info(f"WARA collector logging to '{filename}' at {logging.getLevelName(level)}")

    quiet_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for logger_name in quiet_loggers:
        logging.getLogger(logger_name).setLevel(quiet_level)
    logger.debug(f"Set {', '.join(quiet_loggers)} to {logging.getLevelName(quiet_level)}")

    return logger

def first_non_empty(*values, default=UNKNOWN):
    """Returns the first value that is neither None nor an empty/blank string."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return default

def parse_resource_id(resource_id):
    """Splits an ARM id into (subscription_id, resource_group).

    Positional: segment 2 is the subscription, segment 4 the resource group.
    Missing segments come back as "Unknown".
    """
    if not resource_id or not isinstance(resource_id, str):
        return UNKNOWN, UNKNOWN
    parts = resource_id.split('/')
    subscription_id = parts[2] if len(parts) > 2 and parts[2] else UNKNOWN
    resource_group = parts[4] if len(parts) > 4 and parts[4] else UNKNOWN
    return subscription_id, resource_group

def resource_group_path(subscription_id, resource_group):
    """Lower-cased '/subscriptions/<sub>/resourcegroups/<rg>' key, or None."""
    if not subscription_id or not resource_group or UNKNOWN in (subscription_id, resource_group):
        return None
    return f"/subscriptions/{subscription_id}/resourcegroups/{resource_group}".lower()
