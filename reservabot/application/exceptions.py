class LLMUpstreamError(RuntimeError):
    """Raised when the semantic classifier fails (timeouts, network errors, service unavailable)."""
    pass


class LLMContractError(RuntimeError):
    """Raised when the semantic classifier violates its contract (bad JSON or wrong shape)."""
    pass


class CircuitOpenError(RuntimeError):
    """Raised when a call is rejected because the circuit breaker is open."""
    pass


class PersistenceError(RuntimeError):
    """Raised when a reservation, payment or stock write cannot be committed."""
    pass


class CacheUnavailableError(RuntimeError):
    """Raised by cache store adapters when the shared store cannot be reached."""
    pass
