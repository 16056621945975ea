"""Tests for circuit breaker functionality."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from crm_backend.resilience.circuit_breaker import (
    BreakerStatus,
    CallOutcome,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerListener,
    CircuitState,
    create_circuit_breaker,
)
from crm_backend.resilience.exceptions import (
    CircuitBreakerOpenException,
    CircuitBreakerTimeoutException,
)


class RecordingListener(CircuitBreakerListener):
    """Listener that remembers every event."""

    def __init__(self):
        self.calls = []
        self.transitions = []

    def on_state_change(self, breaker, old_state, new_state):
        self.transitions.append((old_state, new_state))

    def on_call(self, breaker, outcome):
        self.calls.append(outcome)


class TestCircuitBreaker:
    """Test circuit breaker functionality."""

    @pytest.fixture
    def circuit_config(self):
        """Create circuit breaker config for testing."""
        return CircuitBreakerConfig(
            name="t",
            timeout=1000,
            error_threshold_percentage=50,
            reset_timeout=5000,
        )

    @pytest.fixture
    def failing_action(self):
        return AsyncMock(side_effect=Exception("down"))

    @pytest.fixture
    def circuit_breaker(self, circuit_config, failing_action, clock):
        """Create circuit breaker around a failing action."""
        return create_circuit_breaker(failing_action, circuit_config, clock=clock)

    async def _trip(self, breaker, times=5):
        for _ in range(times):
            with pytest.raises(Exception, match="down"):
                await breaker.fire()

    def test_circuit_breaker_initialization(self, circuit_breaker):
        """Test circuit breaker starts closed with empty statistics."""
        assert circuit_breaker.name == "t"
        assert circuit_breaker.state == CircuitState.CLOSED
        assert circuit_breaker.closed
        assert circuit_breaker.opened_at is None

        stats = circuit_breaker.stats
        assert stats.fires == 0
        assert stats.samples == 0
        assert stats.total_fires == 0
        assert stats.error_percentage == 0.0

    @pytest.mark.asyncio
    async def test_successful_call_closed_state(self, circuit_config, clock):
        """Test successful call returns the action result."""
        action = AsyncMock(return_value="success")
        breaker = create_circuit_breaker(action, circuit_config, clock=clock)

        result = await breaker.fire()

        assert result == "success"
        assert action.await_count == 1
        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats.successes == 1

    @pytest.mark.asyncio
    async def test_always_succeeding_action_stays_closed(self, circuit_config, clock):
        """Test a healthy dependency never trips the circuit."""
        action = AsyncMock(return_value="ok")
        breaker = create_circuit_breaker(action, circuit_config, clock=clock)

        for _ in range(50):
            assert await breaker.fire() == "ok"
            clock.advance(500)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats.total_successes == 50

    @pytest.mark.asyncio
    async def test_arguments_forwarded(self, circuit_config, clock):
        """Test positional and keyword arguments reach the action."""
        action = AsyncMock(return_value=3)
        breaker = create_circuit_breaker(action, circuit_config, clock=clock)

        await breaker.fire(1, 2, mode="sum")

        action.assert_awaited_once_with(1, 2, mode="sum")

    @pytest.mark.asyncio
    async def test_failure_in_closed_state(self, circuit_breaker):
        """Test action error propagates unchanged without a fallback."""
        with pytest.raises(Exception, match="down"):
            await circuit_breaker.fire()

        assert circuit_breaker.state == CircuitState.CLOSED
        assert circuit_breaker.stats.failures == 1

    @pytest.mark.asyncio
    async def test_sync_action(self, circuit_config, clock):
        """Test a plain function can be protected."""
        breaker = create_circuit_breaker(lambda x: x * 2, circuit_config, clock=clock)

        assert await breaker.fire(21) == 42
        assert breaker.stats.successes == 1

    @pytest.mark.asyncio
    async def test_sync_action_failure(self, circuit_config, clock):
        """Test a plain function raising counts as a failure."""

        def action():
            raise ValueError("bad input")

        breaker = create_circuit_breaker(action, circuit_config, clock=clock)

        with pytest.raises(ValueError, match="bad input"):
            await breaker.fire()
        assert breaker.stats.failures == 1

    @pytest.mark.asyncio
    async def test_blocking_sync_action_times_out(self, circuit_config):
        """Test a blocking plain function is abandoned at the timeout."""

        def blocking_lookup():
            time.sleep(0.5)
            return "late"

        breaker = create_circuit_breaker(
            blocking_lookup, circuit_config.with_overrides(timeout=100)
        )

        start = time.monotonic()
        with pytest.raises(CircuitBreakerTimeoutException):
            await breaker.fire()
        elapsed = time.monotonic() - start

        assert elapsed < 0.4
        assert breaker.stats.timeouts == 1
        assert breaker.stats.successes == 0

    @pytest.mark.asyncio
    async def test_blocking_sync_action_does_not_stall_loop(self, circuit_config):
        """Test other tasks keep running while a plain function blocks."""
        ticks = []

        async def ticker():
            for _ in range(5):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        def blocking_lookup():
            time.sleep(0.2)
            return "client"

        breaker = create_circuit_breaker(blocking_lookup, circuit_config)
        ticking = asyncio.create_task(ticker())

        assert await breaker.fire() == "client"
        assert len(ticks) == 5
        await ticking

    @pytest.mark.asyncio
    async def test_call_runs_given_function(self, circuit_config, clock):
        """Test call() runs the passed function under the shared state."""
        action = AsyncMock(return_value="bound")
        breaker = create_circuit_breaker(action, circuit_config, clock=clock)

        async def archive_client(client_id):
            return f"archived {client_id}"

        assert await breaker.call(archive_client, 9) == "archived 9"
        action.assert_not_awaited()
        assert breaker.stats.successes == 1

        breaker.open()
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(archive_client, 9)

    @pytest.mark.asyncio
    async def test_below_volume_threshold_does_not_open(self, circuit_breaker):
        """Test a few failures are not enough to open the circuit."""
        await self._trip(circuit_breaker, times=4)

        assert circuit_breaker.state == CircuitState.CLOSED
        assert circuit_breaker.stats.error_percentage == 100.0

    @pytest.mark.asyncio
    async def test_circuit_opens_after_threshold(self, circuit_breaker, failing_action):
        """Test circuit opens once volume and error rate are reached."""
        await self._trip(circuit_breaker)

        assert circuit_breaker.state == CircuitState.OPEN
        assert circuit_breaker.opened

        with pytest.raises(CircuitBreakerOpenException, match="'t' is open"):
            await circuit_breaker.fire()
        with pytest.raises(CircuitBreakerOpenException):
            await circuit_breaker.fire()

        assert failing_action.await_count == 5
        stats = circuit_breaker.stats
        assert stats.rejects == 2
        assert stats.failures == 5

    @pytest.mark.asyncio
    async def test_error_percentage_threshold(self, circuit_config, clock):
        """Test mixed outcomes open the circuit only at the threshold."""
        action = AsyncMock(return_value="ok")
        breaker = create_circuit_breaker(action, circuit_config, clock=clock)

        for _ in range(3):
            await breaker.fire()
        action.side_effect = Exception("down")
        for _ in range(2):
            with pytest.raises(Exception, match="down"):
                await breaker.fire()

        # 2 of 5 failed
        assert breaker.state == CircuitState.CLOSED

        with pytest.raises(Exception, match="down"):
            await breaker.fire()

        # 3 of 6 failed
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_zero_volume_threshold_opens_on_first_failure(
        self, circuit_config, failing_action, clock
    ):
        """Test volume threshold can be disabled."""
        breaker = create_circuit_breaker(
            failing_action,
            circuit_config.with_overrides(volume_threshold=0),
            clock=clock,
        )

        await self._trip(breaker, times=1)

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_old_failures_leave_the_window(self, circuit_breaker, clock):
        """Test only the rolling window counts towards the error rate."""
        await self._trip(circuit_breaker, times=4)
        clock.advance(10000)

        assert circuit_breaker.stats.failures == 0
        assert circuit_breaker.stats.total_failures == 4

        await self._trip(circuit_breaker, times=1)
        assert circuit_breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_timeout(self, circuit_config):
        """Test a slow action is abandoned at the timeout."""

        async def slow():
            await asyncio.sleep(2)
            return "late"

        breaker = create_circuit_breaker(
            slow, circuit_config.with_overrides(timeout=500)
        )

        start = time.monotonic()
        with pytest.raises(CircuitBreakerTimeoutException) as exc_info:
            await breaker.fire()
        elapsed = time.monotonic() - start

        assert 0.45 <= elapsed < 1.5
        assert exc_info.value.timeout_ms == 500
        assert exc_info.value.breaker_name == "t"
        assert breaker.stats.timeouts == 1
        assert breaker.stats.failures == 0

    @pytest.mark.asyncio
    async def test_late_settlement_is_discarded(self, circuit_config):
        """Test a timed out action cannot turn into a success later."""
        completed = []

        async def slow():
            await asyncio.sleep(0.2)
            completed.append(True)
            return "late"

        breaker = create_circuit_breaker(
            slow, circuit_config.with_overrides(timeout=50)
        )

        with pytest.raises(CircuitBreakerTimeoutException):
            await breaker.fire()
        await asyncio.sleep(0.3)

        assert completed == []
        assert breaker.stats.successes == 0
        assert breaker.stats.timeouts == 1

    @pytest.mark.asyncio
    async def test_timeout_disabled(self, circuit_config):
        """Test timeout=None waits for the action."""

        async def slow():
            await asyncio.sleep(0.05)
            return "done"

        breaker = create_circuit_breaker(
            slow, circuit_config.with_overrides(timeout=None)
        )

        assert await breaker.fire() == "done"

    @pytest.mark.asyncio
    async def test_fallback_on_failure(self, circuit_config, failing_action, clock):
        """Test fallback result replaces the error and gets the same arguments."""
        fallback = MagicMock(return_value="fallback response")
        breaker = create_circuit_breaker(
            failing_action,
            circuit_config.with_overrides(fallback=fallback),
            clock=clock,
        )

        result = await breaker.fire("client-1", include_sales=True)

        assert result == "fallback response"
        fallback.assert_called_once_with("client-1", include_sales=True)
        assert breaker.stats.failures == 1
        assert breaker.stats.fallbacks == 1

    @pytest.mark.asyncio
    async def test_async_fallback(self, circuit_config, failing_action, clock):
        """Test an async fallback is awaited."""
        fallback = AsyncMock(return_value="cached")
        breaker = create_circuit_breaker(
            failing_action,
            circuit_config.with_overrides(fallback=fallback),
            clock=clock,
        )

        assert await breaker.fire(7) == "cached"
        fallback.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_fallback_on_timeout(self, circuit_config):
        """Test fallback also covers timeouts."""

        async def slow():
            await asyncio.sleep(1)

        breaker = create_circuit_breaker(
            slow,
            circuit_config.with_overrides(timeout=20, fallback=lambda: "stale"),
        )

        assert await breaker.fire() == "stale"
        assert breaker.stats.timeouts == 1

    @pytest.mark.asyncio
    async def test_fallback_on_open_circuit(self, circuit_config, clock):
        """Test rejected calls use the fallback without running the action."""
        action = AsyncMock(return_value="live")
        breaker = create_circuit_breaker(
            action,
            circuit_config.with_overrides(fallback=lambda *args: "fallback"),
            clock=clock,
        )
        breaker.open()

        assert await breaker.fire() == "fallback"
        action.assert_not_awaited()
        assert breaker.stats.rejects == 1

    @pytest.mark.asyncio
    async def test_fallback_error_propagates(
        self, circuit_config, failing_action, clock
    ):
        """Test an error raised by the fallback replaces the original one."""
        fallback = MagicMock(side_effect=RuntimeError("fallback broke"))
        breaker = create_circuit_breaker(
            failing_action,
            circuit_config.with_overrides(fallback=fallback),
            clock=clock,
        )

        with pytest.raises(RuntimeError, match="fallback broke"):
            await breaker.fire()
        assert breaker.stats.failures == 1

    @pytest.mark.asyncio
    async def test_open_stays_open_before_reset_timeout(self, circuit_breaker, clock):
        """Test the circuit keeps rejecting until the reset timeout."""
        await self._trip(circuit_breaker)
        clock.advance(4999)

        assert circuit_breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpenException):
            await circuit_breaker.fire()

    @pytest.mark.asyncio
    async def test_rejections_do_not_extend_open_period(self, circuit_breaker, clock):
        """Test the reset timer is anchored to the open transition."""
        await self._trip(circuit_breaker)
        for _ in range(5):
            clock.advance(1000)
            if circuit_breaker.opened:
                with pytest.raises(CircuitBreakerOpenException):
                    await circuit_breaker.fire()

        assert circuit_breaker.state == CircuitState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_successful_probe_closes_circuit(
        self, circuit_breaker, failing_action, clock
    ):
        """Test a successful half-open probe closes the circuit."""
        await self._trip(circuit_breaker)
        clock.advance(5000)
        assert circuit_breaker.state == CircuitState.HALF_OPEN

        failing_action.side_effect = None
        failing_action.return_value = "recovered"

        assert await circuit_breaker.fire() == "recovered"
        assert failing_action.await_count == 6
        assert circuit_breaker.state == CircuitState.CLOSED
        assert circuit_breaker.stats.failures == 0
        assert circuit_breaker.stats.total_failures == 5

        assert await circuit_breaker.fire() == "recovered"
        assert failing_action.await_count == 7

    @pytest.mark.asyncio
    async def test_failed_probe_reopens_circuit(
        self, circuit_breaker, failing_action, clock
    ):
        """Test a failed probe re-opens the circuit and restarts the timer."""
        await self._trip(circuit_breaker)
        clock.advance(5000)

        with pytest.raises(Exception, match="down"):
            await circuit_breaker.fire()

        assert failing_action.await_count == 6
        assert circuit_breaker.state == CircuitState.OPEN
        assert circuit_breaker.opened_at == clock.now

        clock.advance(4999)
        assert circuit_breaker.state == CircuitState.OPEN
        clock.advance(1)
        assert circuit_breaker.state == CircuitState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_half_open_allows_single_probe(self, circuit_config, clock):
        """Test callers arriving during the probe are rejected."""
        release = asyncio.Event()
        calls = []

        async def action():
            calls.append(1)
            await release.wait()
            return "probe"

        breaker = create_circuit_breaker(action, circuit_config, clock=clock)
        breaker.open()
        clock.advance(5000)

        probe = asyncio.create_task(breaker.fire())
        await asyncio.sleep(0.01)

        with pytest.raises(CircuitBreakerOpenException):
            await breaker.fire()
        assert len(calls) == 1

        release.set()
        assert await probe == "probe"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_slow_fallback_keeps_half_open_trial_exclusive(
        self, circuit_config, clock
    ):
        """Test a failed trial still in its fallback cannot admit extra callers."""
        attempts = []
        fallbacks = []
        probe_release = asyncio.Event()
        fallback_release = asyncio.Event()

        async def action():
            attempts.append(1)
            if len(attempts) == 1:
                raise ConnectionError("down")
            await probe_release.wait()
            return "recovered"

        async def fallback():
            fallbacks.append(1)
            if len(fallbacks) == 1:
                await fallback_release.wait()
            return "cached"

        breaker = create_circuit_breaker(
            action, circuit_config.with_overrides(fallback=fallback), clock=clock
        )
        breaker.open()
        clock.advance(5000)

        failed_probe = asyncio.create_task(breaker.fire())
        await asyncio.sleep(0.01)
        assert breaker.state == CircuitState.OPEN

        clock.advance(5000)
        second_probe = asyncio.create_task(breaker.fire())
        await asyncio.sleep(0.01)
        assert len(attempts) == 2

        fallback_release.set()
        assert await failed_probe == "cached"

        assert await breaker.fire() == "cached"
        assert len(attempts) == 2
        assert breaker.stats.rejects == 1

        probe_release.set()
        assert await second_probe == "recovered"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_ignored_exception(self, circuit_config, clock):
        """Test business errors pass through without tripping the circuit."""
        action = AsyncMock(side_effect=KeyError("client"))
        fallback = MagicMock()
        breaker = create_circuit_breaker(
            action,
            circuit_config.with_overrides(
                ignored_exceptions=("KeyError",), fallback=fallback
            ),
            clock=clock,
        )

        for _ in range(10):
            with pytest.raises(KeyError):
                await breaker.fire()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats.successes == 10
        fallback.assert_not_called()

    def test_ignored_exception_matches_base_class(self, circuit_config):
        """Test qualified names match anywhere in the exception hierarchy."""
        breaker = CircuitBreaker(
            AsyncMock(),
            circuit_config.with_overrides(ignored_exceptions=("builtins.LookupError",)),
        )

        assert breaker.is_ignored_exception(KeyError("x"))
        assert not breaker.is_ignored_exception(ValueError("x"))

    @pytest.mark.asyncio
    async def test_listeners_receive_events(
        self, circuit_config, failing_action, clock
    ):
        """Test listeners see call outcomes and transitions."""
        listener = RecordingListener()
        breaker = create_circuit_breaker(
            failing_action, circuit_config, listeners=[listener], clock=clock
        )

        await self._trip(breaker)
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.fire()

        assert listener.calls == [CallOutcome.FAILURE] * 5 + [CallOutcome.REJECTED]
        assert listener.transitions == [(CircuitState.CLOSED, CircuitState.OPEN)]

    @pytest.mark.asyncio
    async def test_broken_listener_does_not_break_calls(self, circuit_config, clock):
        """Test a failing listener is logged and ignored."""
        listener = MagicMock()
        listener.on_call.side_effect = RuntimeError("listener bug")
        breaker = create_circuit_breaker(
            AsyncMock(return_value="ok"), circuit_config, clock=clock
        )
        breaker.add_listener(listener)

        assert await breaker.fire() == "ok"
        listener.on_call.assert_called_once()

    @pytest.mark.asyncio
    async def test_status(self, circuit_config, clock):
        """Test the derived health label."""
        action = AsyncMock(return_value="ok")
        breaker = create_circuit_breaker(action, circuit_config, clock=clock)
        assert breaker.status == BreakerStatus.HEALTHY

        for _ in range(3):
            await breaker.fire()
        action.side_effect = Exception("down")
        for _ in range(2):
            with pytest.raises(Exception):
                await breaker.fire()

        # 40% is above half the threshold
        assert breaker.state == CircuitState.CLOSED
        assert breaker.status == BreakerStatus.DEGRADED

        breaker.open()
        assert breaker.status == BreakerStatus.DOWN

        clock.advance(5000)
        assert breaker.status == BreakerStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_manual_close(self, circuit_breaker):
        """Test manual close resets the circuit and its window."""
        await self._trip(circuit_breaker)

        circuit_breaker.close()

        assert circuit_breaker.state == CircuitState.CLOSED
        assert circuit_breaker.opened_at is None
        assert circuit_breaker.stats.failures == 0
