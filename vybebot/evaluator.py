"""Threshold evaluation and the re-notification cooldown gate."""

from datetime import datetime, timedelta

from vybebot.models import Alert, Condition, Operator

COOLDOWN = timedelta(hours=1)


def evaluate(condition: Condition, current_value: float) -> bool:
    """
    Check a condition against the current metric value.

    Both comparisons are strict: a value sitting exactly on the threshold
    never fires.

    Args:
        condition: Any condition variant
        current_value: Freshly fetched metric value

    Returns:
        True if the alert should fire
    """
    if condition.operator is Operator.GREATER_THAN:
        return current_value > condition.threshold
    if condition.operator is Operator.LESS_THAN:
        return current_value < condition.threshold
    raise ValueError(f"Unknown operator: {condition.operator!r}")


def is_eligible(alert: Alert, now: datetime, cooldown: timedelta = COOLDOWN) -> bool:
    """
    Return True if the alert may notify again.

    Never-triggered alerts are always eligible; otherwise at least `cooldown`
    must have passed since the last successful notification. This only reads
    the alert, the caller records the new trigger time after delivery.
    """
    if alert.last_triggered_at is None:
        return True
    return now - alert.last_triggered_at >= cooldown
