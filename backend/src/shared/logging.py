"""
Logging utilities for the submission service.
All modules log through the single 'nexus' logger so CloudWatch gets one format.
"""
import logging
import json
import os

logger = logging.getLogger('nexus')
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())

if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)


def log_event(event: dict) -> None:
    """Log incoming Lambda event, without body and headers."""
    try:
        safe_event = {k: v for k, v in event.items() if k not in ['body', 'headers']}
        logger.info(f"Lambda event: {json.dumps(safe_event, default=str)}")
    except Exception as e:
        logger.warning(f"Could not log event: {e}")


def log_side_effect_failure(step: str, error: Exception, **context) -> None:
    """
    Log a failed best-effort step (unlock, pool update, notification, audit).

    The primary result is already committed when this is called, so the
    failure is reported at warning level with the ids involved and never raised.
    """
    details = ', '.join(f"{key}={value}" for key, value in sorted(context.items()))
    logger.warning(f"[{step}] best-effort step failed ({details}): {error}")
