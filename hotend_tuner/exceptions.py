"""
Hotend Tuner Exceptions

Simple exception hierarchy for error handling.

Numeric instability during integration is not an exception: it is carried on
the Trajectory (``unstable``) and turned into a sentinel cost. Cancelling an
optimization is not an exception either: the result is flagged ``cancelled``.
"""


class HotendTunerError(Exception):
    """Base exception for hotend_tuner."""

    pass


class InvalidConfiguration(HotendTunerError, ValueError):
    """Parameters, grid, bounds or tuning settings are invalid."""

    pass
