"""Registry of the circuit breakers owned by one application instance."""

from collections.abc import Callable
from typing import Any

import structlog

from .breaker import CircuitBreaker, CircuitState
from .config import (
    CIRCUIT_BREAKER_CONFIGS,
    CircuitBreakerConfig,
    CircuitBreakerSettings,
)
from .factories import create_circuit_breaker, get_circuit_breaker_stats

logger = structlog.get_logger()


class CircuitBreakerRegistry:
    """Keeps one circuit breaker per logical dependency.

    The application creates the registry at startup and clears it on
    shutdown; nothing here is process-global.
    """

    def __init__(self, settings: CircuitBreakerSettings | None = None):
        """Initialize circuit breaker registry.

        Args:
            settings: Circuit breaker settings applied to preset configurations
        """
        self.settings = settings or CircuitBreakerSettings()
        self._breakers: dict[str, CircuitBreaker] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

    def get(self, name: str) -> CircuitBreaker | None:
        """Get a registered breaker by name, or None."""
        return self._breakers.get(name)

    def get_or_create(
        self,
        name: str,
        action: Callable[..., Any],
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Get the breaker registered under ``name`` or create one.

        Args:
            name: Breaker name
            action: Callable protected by a newly created breaker
            config: Configuration for a new breaker; defaults to the preset of
                the same name, or the default configuration

        Returns:
            Circuit breaker instance
        """
        breaker = self._breakers.get(name)
        if breaker is not None:
            return breaker

        config = self._resolve_config(name, config)
        breaker = create_circuit_breaker(action, config)
        self._breakers[name] = breaker
        logger.info(
            "Created circuit breaker",
            circuit_name=name,
            config=config.model_dump(),
        )
        return breaker

    def _resolve_config(
        self, name: str, config: CircuitBreakerConfig | None
    ) -> CircuitBreakerConfig:
        if config is None:
            if name in CIRCUIT_BREAKER_CONFIGS:
                config = self.settings.get_config(name)
            else:
                logger.debug(
                    "No preset for circuit breaker, using default config",
                    circuit_name=name,
                )
                return self.settings.get_default_config(name)

        if config.name != name:
            config = config.with_overrides(name=name)
        return config

    def register(self, breaker: CircuitBreaker) -> CircuitBreaker:
        """Register an existing breaker under its own name.

        Raises:
            ValueError: If another breaker already uses that name
        """
        existing = self._breakers.get(breaker.name)
        if existing is not None and existing is not breaker:
            raise ValueError(f"Circuit breaker '{breaker.name}' is already registered")

        self._breakers[breaker.name] = breaker
        logger.info("Registered circuit breaker", circuit_name=breaker.name)
        return breaker

    def get_all(self) -> dict[str, CircuitBreaker]:
        """Get all registered breakers.

        Returns:
            Copy of the name to breaker mapping
        """
        return self._breakers.copy()

    def get_stats(self) -> dict[str, dict[str, Any]]:
        """Get the stats projection of every registered breaker."""
        return {
            name: get_circuit_breaker_stats(breaker)
            for name, breaker in self._breakers.items()
        }

    def get_global_stats(self) -> dict[str, Any]:
        """Get aggregate statistics across all breakers.

        Returns:
            Breaker counts per state and summed lifetime call counts
        """
        states = [breaker.state for breaker in self._breakers.values()]
        stats = [breaker.stats for breaker in self._breakers.values()]

        return {
            "total_breakers": len(self._breakers),
            "open_breakers": states.count(CircuitState.OPEN),
            "half_open_breakers": states.count(CircuitState.HALF_OPEN),
            "closed_breakers": states.count(CircuitState.CLOSED),
            "total_requests": sum(s.total_fires for s in stats),
            "total_successes": sum(s.total_successes for s in stats),
            "total_failures": sum(s.total_failures for s in stats),
            "total_timeouts": sum(s.total_timeouts for s in stats),
            "total_rejects": sum(s.total_rejects for s in stats),
        }

    def reset(self, name: str) -> bool:
        """Close a breaker and clear its window.

        Returns:
            False if no breaker has that name
        """
        breaker = self._breakers.get(name)
        if breaker is None:
            logger.warning("Circuit breaker not found", circuit_name=name)
            return False

        breaker.close()
        logger.info("Reset circuit breaker", circuit_name=name)
        return True

    def reset_all(self) -> None:
        """Close every registered breaker."""
        for breaker in self._breakers.values():
            breaker.close()
        logger.info("Reset all circuit breakers")

    def force_open(self, name: str) -> bool:
        """Trip a breaker manually.

        Returns:
            False if no breaker has that name
        """
        breaker = self._breakers.get(name)
        if breaker is None:
            logger.warning("Circuit breaker not found", circuit_name=name)
            return False

        breaker.open()
        return True

    def remove(self, name: str) -> bool:
        """Forget a breaker.

        Returns:
            False if no breaker has that name
        """
        if self._breakers.pop(name, None) is None:
            logger.warning("Circuit breaker not found", circuit_name=name)
            return False

        logger.info("Removed circuit breaker", circuit_name=name)
        return True

    def clear(self) -> None:
        """Forget all breakers."""
        self._breakers.clear()
        logger.info("Cleared all circuit breakers")
