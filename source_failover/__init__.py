"""
Source Failover Package - Primary/secondary operation executor.

Chooses between two different operations or providers, demoting a source
after repeated failures and routing to the other until it is reset.

Quick Start:
    from source_failover import CircuitedOperation, FailoverConfig
    
    executor = CircuitedOperation(FailoverConfig(retry_attempts=2))
    result = await executor.execute(primary_op, secondary_op)
"""

from source_failover.config import FailoverConfig
from source_failover.exceptions import (
    BothProvidersUnavailableError,
    FailoverError,
    OperationTimeoutError,
    SecondaryOperationError,
)
from source_failover.executor import CircuitedOperation
from source_failover.models import FailoverStatus, ProviderName, ProviderStatus


__all__ = [
    "CircuitedOperation",
    "FailoverConfig",
    "FailoverStatus",
    "ProviderName",
    "ProviderStatus",
    "FailoverError",
    "OperationTimeoutError",
    "BothProvidersUnavailableError",
    "SecondaryOperationError",
]
