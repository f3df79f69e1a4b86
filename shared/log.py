"""
Component logging helpers.

All service output goes through the stdlib ``logging`` hierarchy rooted at
``AnyListNotify`` so that configure_logging() decides format and level in
one place. This module provides a factory to create log functions with a
component name, so modules don't repeat logger plumbing.

Usage:
    from shared.log import create_logger
    log_trace, log_debug, log_info, log_warn, log_error = create_logger("Coordinator")
    log_info("Cycle committed")  # -> logger 'AnyListNotify.Coordinator'
"""

import logging

ROOT_LOGGER_NAME = "AnyListNotify"

# Below DEBUG; used for per-row chatter
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def create_logger(component: str = ""):
    """Create log functions for a component.

    Args:
        component: Component name. If provided, the logger becomes
                   "AnyListNotify.{component}" (spaces removed), otherwise "AnyListNotify".

    Returns:
        Tuple of (log_trace, log_debug, log_info, log_warn, log_error) functions.
    """
    name = f"{ROOT_LOGGER_NAME}.{component.replace(' ', '')}" if component else ROOT_LOGGER_NAME
    logger = logging.getLogger(name)

    def log_trace(msg): logger.log(TRACE, msg)
    def log_debug(msg): logger.debug(msg)
    def log_info(msg): logger.info(msg)
    def log_warn(msg): logger.warning(msg)
    def log_error(msg): logger.error(msg)

    return log_trace, log_debug, log_info, log_warn, log_error
