"""Exception types raised by Beacon."""


class BeaconError(Exception):
    """Base class for all Beacon errors."""


class TransportError(BeaconError):
    """A PUT or GET against the registry failed."""


class DecodeError(BeaconError):
    """The registry returned a response that could not be decoded."""


class ResolutionError(BeaconError):
    """No usable local address could be determined."""


class ProcessError(BeaconError):
    """Signalling or killing the supervised process failed."""


class ConfigError(BeaconError):
    """The configuration cannot be used to register a service."""
