"""Bounded-concurrency analysis pool and its resilience primitives.

Public API
----------
.. autoclass:: AnalysisPool
.. autoclass:: CircuitBreaker
.. autoclass:: CircuitState
.. autoclass:: ExponentialBackoff
.. autoclass:: FifoSemaphore
"""

from projsynth.pool.analysis_pool import AnalysisPool
from projsynth.pool.circuit_breaker import CircuitBreaker, CircuitState
from projsynth.pool.retry import ExponentialBackoff, is_retryable
from projsynth.pool.semaphore import FifoSemaphore

__all__ = [
    "AnalysisPool",
    "CircuitBreaker",
    "CircuitState",
    "ExponentialBackoff",
    "FifoSemaphore",
    "is_retryable",
]
