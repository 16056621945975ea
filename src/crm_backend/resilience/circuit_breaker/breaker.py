"""Circuit breaker implementation for database and external service calls."""

import asyncio
import inspect
import time
from collections.abc import Callable, Iterable
from enum import Enum
from typing import Any, Protocol

import structlog

from ..exceptions import CircuitBreakerOpenException, CircuitBreakerTimeoutException
from .config import CircuitBreakerConfig
from .stats import CallOutcome, CircuitBreakerStats, RollingWindow

logger = structlog.get_logger()


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class BreakerStatus(str, Enum):
    """Human-readable health label derived from state and error rate."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class CircuitBreakerListener(Protocol):
    """Receives breaker events.

    Any object with both hooks qualifies; subclasses inherit no-op hooks and
    override the ones they need.
    """

    def on_state_change(
        self,
        breaker: "CircuitBreaker",
        old_state: CircuitState,
        new_state: CircuitState,
    ) -> None:
        pass

    def on_call(self, breaker: "CircuitBreaker", outcome: CallOutcome) -> None:
        pass


def _discard_outcome(task: "asyncio.Future[Any]") -> None:
    # Mark a late result or exception as retrieved after a timeout.
    if not task.cancelled():
        task.exception()


async def _run_in_thread(
    func: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]
) -> Any:
    result = await asyncio.to_thread(func, *args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


class CircuitBreaker:
    """Circuit breaker wrapping one sync or async action.

    The breaker is closed while the dependency behaves. Once the failure
    percentage over the rolling window reaches the configured threshold, with
    at least ``volume_threshold`` samples, it opens and rejects calls without
    running the action. After ``reset_timeout`` it lets a single probe through
    (half-open); the probe's outcome closes or re-opens the circuit. Calls
    arriving while the probe is in flight are rejected.
    """

    def __init__(
        self,
        action: Callable[..., Any],
        config: CircuitBreakerConfig,
        listeners: Iterable[CircuitBreakerListener] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            action: Callable to protect; may return a value or an awaitable
            config: Circuit breaker configuration
            listeners: Receivers of state change and call events
            clock: Monotonic clock in seconds
        """
        self.action = action
        self.config = config
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._opened_at: float | None = None
        self._probe_in_flight = False
        self._probe_generation = 0
        self._window = RollingWindow(
            config.rolling_count_timeout, config.rolling_count_buckets, clock
        )
        self._listeners: list[CircuitBreakerListener] = list(listeners)

        logger.debug(
            "Circuit breaker created",
            circuit_name=config.name,
            timeout=config.timeout,
            error_threshold_percentage=config.error_threshold_percentage,
            reset_timeout=config.reset_timeout,
            volume_threshold=config.volume_threshold,
        )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def state(self) -> CircuitState:
        """Current state; an expired open circuit reports half-open."""
        self._update_state()
        return self._state

    @property
    def opened(self) -> bool:
        return self.state is CircuitState.OPEN

    @property
    def half_open(self) -> bool:
        return self.state is CircuitState.HALF_OPEN

    @property
    def closed(self) -> bool:
        return self.state is CircuitState.CLOSED

    @property
    def opened_at(self) -> float | None:
        """Clock reading of the last transition to open."""
        return self._opened_at

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._window.snapshot()

    @property
    def status(self) -> BreakerStatus:
        state = self.state
        if state is CircuitState.OPEN:
            return BreakerStatus.DOWN
        if state is CircuitState.HALF_OPEN:
            return BreakerStatus.DEGRADED

        stats = self.stats
        if (
            stats.samples
            and stats.error_percentage >= self.config.error_threshold_percentage / 2
        ):
            return BreakerStatus.DEGRADED
        return BreakerStatus.HEALTHY

    def add_listener(self, listener: CircuitBreakerListener) -> None:
        self._listeners.append(listener)

    async def fire(self, *args: Any, **kwargs: Any) -> Any:
        """Execute the bound action with circuit breaker protection.

        Args:
            *args: Action arguments
            **kwargs: Action keyword arguments

        Returns:
            The action result, or the fallback result when the action fails
            or the circuit rejects the call

        Raises:
            CircuitBreakerOpenException: If the circuit rejects the call and
                there is no fallback
            CircuitBreakerTimeoutException: If the action exceeds the timeout
                and there is no fallback
        """
        return await self.call(self.action, *args, **kwargs)

    async def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Execute ``func`` under this breaker's state, timeout and fallback.

        Lets several operations share one breaker, e.g. every query of a
        repository behind one database breaker.
        """
        self._window.record_fire()
        self._update_state()

        if self._state is CircuitState.OPEN or (
            self._state is CircuitState.HALF_OPEN and self._probe_in_flight
        ):
            return await self._reject(args, kwargs)

        is_probe = self._state is CircuitState.HALF_OPEN
        probe_generation = None
        if is_probe:
            self._probe_generation += 1
            probe_generation = self._probe_generation
            self._probe_in_flight = True

        start = self._clock()
        try:
            result = await self._invoke(func, args, kwargs)
        except CircuitBreakerTimeoutException as e:
            self._record_failure(
                e, CallOutcome.TIMEOUT, self._elapsed_ms(start), is_probe
            )
            return await self._fallback_or_raise(e, args, kwargs)
        except Exception as e:
            if self.is_ignored_exception(e):
                self._record_success(self._elapsed_ms(start), is_probe)
                raise
            self._record_failure(
                e, CallOutcome.FAILURE, self._elapsed_ms(start), is_probe
            )
            return await self._fallback_or_raise(e, args, kwargs)
        else:
            self._record_success(self._elapsed_ms(start), is_probe)
            return result
        finally:
            # A newer probe may have started while this one awaited its fallback.
            if probe_generation == self._probe_generation:
                self._probe_in_flight = False

    async def _invoke(
        self, func: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> Any:
        if inspect.iscoroutinefunction(func):
            pending = func(*args, **kwargs)
        else:
            # Plain callables run in a worker thread so they cannot stall the loop.
            pending = _run_in_thread(func, args, kwargs)
        if self.config.timeout is None:
            return await pending

        task = asyncio.ensure_future(pending)
        try:
            done, _ = await asyncio.wait({task}, timeout=self.config.timeout / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            task.add_done_callback(_discard_outcome)
            raise CircuitBreakerTimeoutException(self.name, self.config.timeout)
        return task.result()

    async def _reject(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        self._window.record(CallOutcome.REJECTED)
        self._notify_call(CallOutcome.REJECTED)
        logger.warning(
            "Circuit breaker is open, rejecting request",
            circuit_name=self.name,
            state=self._state.value,
        )
        return await self._fallback_or_raise(
            CircuitBreakerOpenException(self.name), args, kwargs
        )

    async def _fallback_or_raise(
        self, error: Exception, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> Any:
        if self.config.fallback is None:
            raise error

        self._window.record(CallOutcome.FALLBACK)
        self._notify_call(CallOutcome.FALLBACK)
        logger.info(
            "Circuit breaker using fallback",
            circuit_name=self.name,
            error_type=type(error).__name__,
        )
        result = self.config.fallback(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _elapsed_ms(self, start: float) -> float:
        return (self._clock() - start) * 1000

    def _update_state(self) -> None:
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and (self._clock() - self._opened_at) * 1000 >= self.config.reset_timeout
        ):
            self._transition_to(CircuitState.HALF_OPEN)

    def _record_success(self, latency_ms: float, is_probe: bool) -> None:
        self._window.record(CallOutcome.SUCCESS, latency_ms)
        self._notify_call(CallOutcome.SUCCESS)

        if is_probe and self._state is CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)

    def _record_failure(
        self,
        error: Exception,
        outcome: CallOutcome,
        latency_ms: float,
        is_probe: bool,
    ) -> None:
        self._window.record(outcome, latency_ms)
        self._notify_call(outcome)
        logger.error(
            "Circuit breaker call failed",
            circuit_name=self.name,
            outcome=outcome.value,
            error_type=type(error).__name__,
            error_message=str(error),
        )

        if is_probe and self._state is CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
        elif self._state is CircuitState.CLOSED:
            stats = self._window.snapshot()
            if (
                stats.samples >= self.config.volume_threshold
                and stats.error_percentage >= self.config.error_threshold_percentage
            ):
                self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state

        if new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
            stats = self._window.snapshot()
            logger.warning(
                "Circuit breaker opened",
                circuit_name=self.name,
                previous_state=old_state.value,
                error_percentage=round(stats.error_percentage, 2),
                samples=stats.samples,
                reset_timeout=self.config.reset_timeout,
            )
        elif new_state is CircuitState.HALF_OPEN:
            self._probe_in_flight = False
            logger.info(
                "Circuit breaker half-open, allowing a probe call",
                circuit_name=self.name,
            )
        else:
            self._opened_at = None
            self._window.reset()
            logger.info(
                "Circuit breaker closed",
                circuit_name=self.name,
                previous_state=old_state.value,
            )

        for listener in self._listeners:
            try:
                listener.on_state_change(self, old_state, new_state)
            except Exception:
                logger.exception(
                    "Circuit breaker listener failed", circuit_name=self.name
                )

    def _notify_call(self, outcome: CallOutcome) -> None:
        for listener in self._listeners:
            try:
                listener.on_call(self, outcome)
            except Exception:
                logger.exception(
                    "Circuit breaker listener failed", circuit_name=self.name
                )

    def is_ignored_exception(self, error: Exception) -> bool:
        """Check whether an error is a business error, not a dependency failure.

        Args:
            error: Exception raised by the action

        Returns:
            True if the exception type matches ``ignored_exceptions``
        """
        if not self.config.ignored_exceptions:
            return False

        for cls in type(error).__mro__:
            if (
                cls.__name__ in self.config.ignored_exceptions
                or f"{cls.__module__}.{cls.__qualname__}"
                in self.config.ignored_exceptions
            ):
                return True
        return False

    def open(self) -> None:
        """Force the circuit open, for maintenance."""
        logger.warning("Circuit breaker forced open", circuit_name=self.name)
        if self._state is CircuitState.OPEN:
            self._opened_at = self._clock()
        self._transition_to(CircuitState.OPEN)

    def close(self) -> None:
        """Force the circuit closed and clear its window, for manual recovery."""
        logger.info("Circuit breaker forced closed", circuit_name=self.name)
        self._transition_to(CircuitState.CLOSED)
        self._window.reset()
