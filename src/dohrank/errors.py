"""
Exception types for DoH Rank.

Probe-level failures (upstream statuses, timeouts, relay errors) are not
exceptions: they are returned as ProbeOutcome values and absorbed into the
resolver's aggregate. Only the conditions below are raised.
"""


class DohRankError(Exception):
    """Base class for all DoH Rank errors."""


class EncodingError(DohRankError, ValueError):
    """A domain name cannot be encoded into a DNS query message."""


class ConfigurationError(DohRankError, ValueError):
    """Invalid test options or resolver list."""


class SessionError(DohRankError, RuntimeError):
    """A session operation was requested in a state that does not allow it."""


class RelayRejectedError(DohRankError):
    """The relay refused every resolver endpoint in a round."""
