from __future__ import annotations


def suggest_throttle(altitude_error_ft: float) -> int:
    """Step law from altitude error (target - current, feet) to throttle percent.

    Positive error means the aircraft is below target. Thresholds are strict
    comparisons and are evaluated top to bottom.
    """
    if altitude_error_ft > 1000:
        return 90
    if altitude_error_ft > 500:
        return 80
    if altitude_error_ft > 200:
        return 65

    if altitude_error_ft < -800:
        return 15
    if altitude_error_ft < -300:
        return 20
    if altitude_error_ft < -150:
        return 30

    return 45
