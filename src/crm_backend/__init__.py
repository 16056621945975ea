"""CRM backend resilience layer: circuit breakers around outbound calls."""

__version__ = "1.0.0"
__description__ = (
    "CRM backend with circuit breakers around database and external service calls"
)
