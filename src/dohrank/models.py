"""
Data models for DoH Rank.

Defines structured types for resolvers, per-resolver aggregates,
test options, session state, probe outcomes and progress events.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .errors import ConfigurationError


class ProbeStatus(Enum):
    """Result status of a single probe attempt."""
    SUCCESS = "success"
    FAILURE = "failure"


class FailureReason(Enum):
    """Why a probe attempt failed."""
    PRECONDITION_FAILED = "precondition_failed"  # upstream 412
    UPSTREAM_STATUS = "upstream_status"
    RELAY_ERROR = "relay_error"        # relay 502, infrastructure failure
    RELAY_REJECTED = "relay_rejected"  # endpoint not allow-listed
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    ENCODING_ERROR = "encoding_error"


class SessionStatus(Enum):
    """Lifecycle of a test session."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SessionStatus.COMPLETED,
            SessionStatus.CANCELLED,
            SessionStatus.FAILED,
        )


@dataclass(frozen=True)
class Resolver:
    """A DNS service reachable through the relay."""
    identifier: str
    name: str
    endpoint: str  # DoH URL the relay forwards to
    ip: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of one probe attempt."""
    status: ProbeStatus
    latency_ms: Optional[float] = None
    reason: Optional[FailureReason] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, latency_ms: float) -> "ProbeOutcome":
        return cls(status=ProbeStatus.SUCCESS, latency_ms=latency_ms)

    @classmethod
    def failure(cls, reason: FailureReason, message: str = "") -> "ProbeOutcome":
        return cls(status=ProbeStatus.FAILURE, reason=reason, message=message)

    @property
    def is_success(self) -> bool:
        """Check if the attempt succeeded."""
        return self.status == ProbeStatus.SUCCESS


@dataclass
class ResolverAggregate:
    """Accumulated measurements for one resolver during a session."""
    resolver: Resolver

    # Failed attempts are stored as the sentinel latency
    latencies: list[float] = field(default_factory=list)
    success_count: int = 0
    total_count: int = 0

    # Derived values
    average_latency: float = 0.0
    qps: float = 0.0
    score: float = 0.0

    # Exhausted-retry failures keyed by FailureReason value
    failure_reasons: dict[str, int] = field(default_factory=dict)

    is_testing: bool = False
    is_completed: bool = False

    @property
    def failure_count(self) -> int:
        return self.total_count - self.success_count

    @property
    def success_rate(self) -> float:
        """Percentage of successful attempts."""
        if self.total_count == 0:
            return 0.0
        return (self.success_count / self.total_count) * 100

    def snapshot(self) -> "ResolverAggregate":
        """Copy that is safe to hand to event consumers."""
        return ResolverAggregate(
            resolver=self.resolver,
            latencies=list(self.latencies),
            success_count=self.success_count,
            total_count=self.total_count,
            average_latency=self.average_latency,
            qps=self.qps,
            score=self.score,
            failure_reasons=dict(self.failure_reasons),
            is_testing=self.is_testing,
            is_completed=self.is_completed,
        )


@dataclass(frozen=True)
class TestOptions:
    """Configuration for a test session."""
    __test__ = False  # not a pytest class

    domain: str = "www.baidu.com"
    rounds: int = 3
    retry: int = 3
    interval_ms: float = 1000
    timeout_ms: float = 5000
    backoff_base_ms: float = 500

    def validate(self) -> None:
        """Raise ConfigurationError if any option is out of range."""
        if self.rounds < 1:
            raise ConfigurationError(f"rounds must be >= 1, got {self.rounds}")
        if self.retry < 1:
            raise ConfigurationError(f"retry must be >= 1, got {self.retry}")
        if self.interval_ms < 0:
            raise ConfigurationError(f"interval must be >= 0, got {self.interval_ms}")
        if self.timeout_ms <= 0:
            raise ConfigurationError(f"timeout must be > 0, got {self.timeout_ms}")
        if self.backoff_base_ms < 0:
            raise ConfigurationError(
                f"backoff base must be >= 0, got {self.backoff_base_ms}"
            )


@dataclass
class SessionState:
    """Run-level state shared by every probe task of a session."""
    status: SessionStatus = SessionStatus.IDLE
    current_round: int = 0
    total_rounds: int = 0
    started_at: Optional[float] = None  # perf_counter seconds
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_running(self) -> bool:
        return self.status == SessionStatus.RUNNING

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()


class EventType(Enum):
    """Progress events emitted by a test session."""
    TEST_STARTED = "TEST_STARTED"
    ROUND_STARTED = "ROUND_STARTED"
    ROUND_COMPLETED = "ROUND_COMPLETED"
    TEST_COMPLETED = "TEST_COMPLETED"
    TEST_CANCELLED = "TEST_CANCELLED"


@dataclass(frozen=True)
class TestStarted:
    __test__ = False

    total_rounds: int
    resolver_count: int
    type: EventType = field(default=EventType.TEST_STARTED, init=False)


@dataclass(frozen=True)
class RoundStarted:
    round: int
    total_rounds: int
    type: EventType = field(default=EventType.ROUND_STARTED, init=False)


@dataclass(frozen=True)
class RoundCompleted:
    round: int
    aggregates: list[ResolverAggregate]
    type: EventType = field(default=EventType.ROUND_COMPLETED, init=False)


@dataclass(frozen=True)
class TestCompleted:
    __test__ = False

    ranked_aggregates: list[ResolverAggregate]
    duration_ms: float
    type: EventType = field(default=EventType.TEST_COMPLETED, init=False)


@dataclass(frozen=True)
class TestCancelled:
    __test__ = False

    round: int
    aggregates: list[ResolverAggregate]
    type: EventType = field(default=EventType.TEST_CANCELLED, init=False)


TestEvent = Union[TestStarted, RoundStarted, RoundCompleted, TestCompleted, TestCancelled]


@dataclass
class LatencySummary:
    """Distribution of successful latencies for one resolver."""
    min_latency: float = 0.0
    max_latency: float = 0.0
    median_latency: float = 0.0
    p95_latency: float = 0.0
    stddev_latency: float = 0.0

    # Average difference between consecutive successful queries
    jitter_ms: float = 0.0
