"""
Test session orchestration for DoH benchmarking.

A session runs a fixed number of rounds. Each round probes every
resolver concurrently, one task per resolver, with bounded retry and
exponential backoff. After the last round every aggregate is scored
and the list is ranked.

State machine: IDLE -> RUNNING -> COMPLETED | CANCELLED | FAILED
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from . import statistics
from .codec import encode
from .errors import ConfigurationError, EncodingError, RelayRejectedError, SessionError
from .models import (
    FailureReason,
    ProbeOutcome,
    ResolverAggregate,
    Resolver,
    RoundCompleted,
    RoundStarted,
    SessionState,
    SessionStatus,
    TestCancelled,
    TestCompleted,
    TestEvent,
    TestOptions,
    TestStarted,
)
from .scoring import calculate_score, rank_aggregates

logger = logging.getLogger(__name__)

# Type for event callback
EventCallback = Callable[[TestEvent], None]

# Failures that another attempt cannot fix
_NOT_RETRIED = (FailureReason.ENCODING_ERROR, FailureReason.RELAY_REJECTED)


class Prober(Protocol):
    async def probe(self, resolver: Resolver, query: bytes) -> ProbeOutcome: ...


def backoff_delay(attempt_index: int, base_ms: float = 500) -> float:
    """Delay in ms after the zero-based attempt ``attempt_index`` failed."""
    return base_ms * (2 ** attempt_index)


@dataclass
class _Run:
    """Everything owned by one call to TestSession.start()."""
    state: SessionState = field(default_factory=SessionState)
    aggregates: list[ResolverAggregate] = field(default_factory=list)
    last_outcomes: dict[int, ProbeOutcome] = field(default_factory=dict)
    duration_ms: Optional[float] = None

    def elapsed_ms(self) -> float:
        if self.state.started_at is None:
            return 0.0
        return (time.perf_counter() - self.state.started_at) * 1000

    def snapshot(self) -> list[ResolverAggregate]:
        return [a.snapshot() for a in self.aggregates]


class TestSession:
    """
    Orchestrates a DoH benchmark session.

    The session owns the aggregates for its lifetime. Only one session
    run may be active at a time; cancel() and reset() must be called
    from the event loop running start(). A run abandoned by reset()
    winds down on its own data and emits nothing further.
    """
    __test__ = False

    def __init__(
        self,
        prober: Prober,
        on_event: Optional[EventCallback] = None,
    ):
        """
        Initialize the session.

        Args:
            prober: Object sending one encoded query for a resolver
                (normally a RelayClient)
            on_event: Optional callback receiving progress events
        """
        self.prober = prober
        self.on_event = on_event
        self._run = _Run()

    @property
    def state(self) -> SessionState:
        return self._run.state

    @property
    def status(self) -> SessionStatus:
        return self._run.state.status

    @property
    def is_running(self) -> bool:
        return self._run.state.is_running

    @property
    def duration_ms(self) -> float:
        """Session duration, frozen once the session stops."""
        if self._run.duration_ms is not None:
            return self._run.duration_ms
        return self._run.elapsed_ms()

    @property
    def aggregates(self) -> list[ResolverAggregate]:
        """Live aggregates in resolver input order."""
        return list(self._run.aggregates)

    def _emit(self, run: _Run, event: TestEvent) -> None:
        if self.on_event and run is self._run:
            self.on_event(event)

    async def _pause(self, delay_ms: float) -> None:
        """Sleep for ``delay_ms``, returning early if cancellation is requested."""
        if delay_ms <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._run.state.cancel_event.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            pass

    async def start(
        self,
        options: TestOptions,
        resolvers: list[Resolver],
    ) -> list[ResolverAggregate]:
        """
        Run a full session.

        Args:
            options: Test options (validated before any work starts)
            resolvers: Resolvers to test, in display order

        Returns:
            Aggregates ranked by score when completed, or in input
            order (unscored) when cancelled

        Raises:
            ConfigurationError: Invalid options or empty resolver list
            SessionError: A session is already running
            RelayRejectedError: The relay rejected every resolver in a round
        """
        status = self.status
        if status != SessionStatus.IDLE and not status.is_terminal:
            raise SessionError("A test session is already running")

        options.validate()
        if not resolvers:
            raise ConfigurationError("At least one resolver is required")

        run = _Run(
            state=SessionState(
                status=SessionStatus.RUNNING,
                current_round=0,
                total_rounds=options.rounds,
                started_at=time.perf_counter(),
            ),
            aggregates=[ResolverAggregate(resolver=r) for r in resolvers],
        )
        self._run = run

        logger.info(
            "Starting test: %d resolvers, %d rounds, domain=%s",
            len(resolvers), options.rounds, options.domain,
        )
        try:
            return await self._drive(run, options)
        except asyncio.CancelledError:
            run.state.status = SessionStatus.CANCELLED
            raise
        finally:
            if run.state.status == SessionStatus.RUNNING:
                run.state.status = SessionStatus.IDLE

    async def _drive(self, run: _Run, options: TestOptions) -> list[ResolverAggregate]:
        state = run.state
        self._emit(run, TestStarted(total_rounds=options.rounds, resolver_count=len(run.aggregates)))

        for round_number in range(1, options.rounds + 1):
            if state.cancel_requested:
                break

            state.current_round = round_number
            self._emit(run, RoundStarted(round=round_number, total_rounds=options.rounds))

            await self._run_round(run, round_number, options)

            self._emit(run, RoundCompleted(round=round_number, aggregates=run.snapshot()))
            logger.info("Round %d/%d completed", round_number, options.rounds)

            if state.status == SessionStatus.FAILED:
                raise RelayRejectedError(
                    "Relay rejected every resolver endpoint; check the relay allow-list"
                )

            # Inter-round pacing (none after the last round)
            if round_number < options.rounds:
                if state.cancel_requested:
                    break
                await self._pause(options.interval_ms)
                if state.cancel_requested:
                    break

        if state.cancel_requested:
            state.status = SessionStatus.CANCELLED
            run.duration_ms = run.elapsed_ms()
            for aggregate in run.aggregates:
                aggregate.is_testing = False
            logger.info("Test cancelled during round %d", state.current_round)
            self._emit(run, TestCancelled(round=state.current_round, aggregates=run.snapshot()))
            return list(run.aggregates)

        duration_ms = run.elapsed_ms()
        run.duration_ms = duration_ms
        for aggregate in run.aggregates:
            aggregate.qps = statistics.calculate_qps(aggregate.success_count, duration_ms)
            aggregate.score = calculate_score(aggregate, duration_ms)
            aggregate.is_completed = True

        ranked = rank_aggregates(run.aggregates)
        state.status = SessionStatus.COMPLETED
        logger.info("Test completed in %.0fms", duration_ms)
        self._emit(run, TestCompleted(
            ranked_aggregates=[a.snapshot() for a in ranked],
            duration_ms=duration_ms,
        ))
        return ranked

    async def _run_round(self, run: _Run, round_number: int, options: TestOptions) -> None:
        """Probe every resolver concurrently and wait for all of them."""
        run.last_outcomes = {}
        tasks = [
            self._probe_with_retry(run, index, aggregate, options, round_number)
            for index, aggregate in enumerate(run.aggregates)
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            logger.error("Probe task failed unexpectedly: %r", error)
        if errors:
            raise errors[0]

        outcomes = run.last_outcomes.values()
        if (
            not run.state.cancel_requested
            and len(run.last_outcomes) == len(run.aggregates)
            and all(o.reason == FailureReason.RELAY_REJECTED for o in outcomes)
        ):
            run.state.status = SessionStatus.FAILED

    async def _attempt(self, resolver: Resolver, query: bytes, options: TestOptions) -> ProbeOutcome:
        """Send one query, bounded by ``options.timeout_ms``."""
        try:
            return await asyncio.wait_for(
                self.prober.probe(resolver, query),
                timeout=options.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            return ProbeOutcome.failure(
                FailureReason.TIMEOUT,
                f"No answer within {options.timeout_ms:g}ms",
            )

    async def _probe_with_retry(
        self,
        run: _Run,
        index: int,
        aggregate: ResolverAggregate,
        options: TestOptions,
        round_number: int,
    ) -> None:
        """
        Attempt one resolver up to ``options.retry`` times.

        Records exactly one outcome per cycle, unless the cycle is
        interrupted by cancellation, in which case nothing is recorded.
        """
        state = run.state
        resolver = aggregate.resolver
        outcome: Optional[ProbeOutcome] = None

        aggregate.is_testing = True
        try:
            for attempt in range(options.retry):
                if state.cancel_requested:
                    return

                try:
                    query = encode(options.domain)
                except EncodingError as e:
                    outcome = ProbeOutcome.failure(FailureReason.ENCODING_ERROR, str(e))
                    break

                outcome = await self._attempt(resolver, query, options)
                if outcome.is_success or outcome.reason in _NOT_RETRIED:
                    break

                logger.debug(
                    "%s failed (round %d, attempt %d/%d): %s",
                    resolver.name, round_number, attempt + 1, options.retry,
                    outcome.message,
                )

                if attempt < options.retry - 1:
                    if state.cancel_requested:
                        return
                    await self._pause(backoff_delay(attempt, options.backoff_base_ms))

            if outcome is None:
                return

            run.last_outcomes[index] = outcome
            statistics.record(aggregate, outcome, run.elapsed_ms())
        finally:
            aggregate.is_testing = False

    def cancel(self) -> None:
        """Request cooperative cancellation of the running session."""
        if self._run.state.is_running:
            logger.info("Cancellation requested")
            self._run.state.cancel_event.set()

    def reset(self) -> None:
        """Clear all aggregates and return to IDLE."""
        self.cancel()
        self._run = _Run()
