# cenownik/services/cron_validator.py

"""Cron expression validation with a minimum firing interval."""

from datetime import datetime

from croniter import CroniterError, croniter

from cenownik.config.settings import Settings


class CronValidationError(ValueError):
    """A cron expression is malformed or fires too often."""


def cron_interval_minutes(
    cron_expression: str, base: datetime | None = None,
) -> float:
    """Minutes between the next two firing times after ``base``.

    Raises ``CroniterError`` for expressions that never fire, such as
    ``0 0 30 2 *``.
    """
    cron = croniter(cron_expression, base or datetime.now())
    first: datetime = cron.get_next(datetime)
    second: datetime = cron.get_next(datetime)
    return (second - first).total_seconds() / 60


def validate_cron_expression(
    cron_expression: str,
    min_interval_minutes: int | None = None,
    base: datetime | None = None,
) -> str:
    """Return the stripped expression, or raise ``CronValidationError``."""
    minimum = (
        Settings.SCRAPE_MIN_INTERVAL_MINUTES
        if min_interval_minutes is None
        else min_interval_minutes
    )
    expression = (cron_expression or "").strip()
    invalid = CronValidationError(f"Invalid cron expression: {cron_expression}")
    if not expression or not croniter.is_valid(expression):
        raise invalid
    try:
        interval = cron_interval_minutes(expression, base)
    except CroniterError as exc:
        raise invalid from exc

    if interval < minimum:
        raise CronValidationError(
            f"Cron interval must be at least {minimum} minutes. "
            f"Current interval: {round(interval)} minutes"
        )
    return expression
