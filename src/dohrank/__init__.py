"""
DoH Rank - DNS-over-HTTPS resolver ranking.

Probes public resolvers through an allow-listed relay and ranks them
by latency, reliability and throughput.
"""

__version__ = "1.0.0"

from .codec import encode
from .models import ProbeOutcome, Resolver, ResolverAggregate, TestOptions
from .runner import TestSession
from .transports import RelayClient

__all__ = [
    "__version__",
    "encode",
    "ProbeOutcome",
    "Resolver",
    "ResolverAggregate",
    "TestOptions",
    "TestSession",
    "RelayClient",
]
