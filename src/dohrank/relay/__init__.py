"""
Relay package for DoH Rank.

Provides the allow-listed DoH forwarding service probes are sent through.
"""

from .app import create_app, run_relay

__all__ = ["create_app", "run_relay"]
