"""Exceptions raised by the simulation core."""


class RacetrackError(Exception):
    pass


class ConfigError(RacetrackError):
    """Invalid simulation or agent configuration."""


class TrackError(RacetrackError):
    """Malformed track definition. The track is rejected and nothing runs."""


class DimensionMismatch(ValueError):
    """Matrix shapes do not line up for the requested operation."""
