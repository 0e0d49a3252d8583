"""
Circuited Operation - Primary/secondary executor with per-source breaker.

Runs a primary operation under a deadline and only falls back to the
secondary operation when the primary fails, times out, is marked
unavailable, or the caller forces failover. Primary and secondary are
never run concurrently.

Usage:
    executor = CircuitedOperation(FailoverConfig(timeout_seconds=5))
    
    result = await executor.execute(
        lambda: primary_client.fetch_channel(request),
        lambda: secondary_client.fetch_channel(request),
    )
    
    if not executor.status().primary.available:
        executor.reset_provider("primary")
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar, Union

from source_failover.config import FailoverConfig
from source_failover.exceptions import (
    BothProvidersUnavailableError,
    OperationTimeoutError,
    SecondaryOperationError,
)
from source_failover.models import FailoverStatus, ProviderName, ProviderStatus


logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Union[Awaitable[T], T]]

ErrorTypes = tuple[type[BaseException], ...]


class CircuitedOperation:
    """
    Executes one of two operations, tracking availability per source.
    
    A timeout and a raised exception count the same: both are a failure
    of that source. After `retry_attempts` consecutive failures the
    primary is skipped entirely until reset_provider() is called.
    
    A demoted source is restored only by reset_provider() or by a
    successful call that reaches it directly through execute_secondary()
    or a forced call; execute() itself never routes to a demoted primary.
    """
    
    def __init__(self, config: Optional[FailoverConfig] = None) -> None:
        self._config = config or FailoverConfig()
        self._providers: dict[ProviderName, ProviderStatus] = {
            ProviderName.PRIMARY: ProviderStatus(),
            ProviderName.SECONDARY: ProviderStatus(),
        }
        logger.info("[failover] Circuited operation initialized")
    
    @property
    def config(self) -> FailoverConfig:
        return self._config
    
    async def execute(
        self,
        primary_op: Operation[T],
        secondary_op: Operation[T],
        force_secondary: bool = False,
        passthrough: ErrorTypes = (),
    ) -> T:
        """
        Run primary_op, falling back to secondary_op on failure.
        
        Args:
            primary_op: Zero-argument callable returning a result or awaitable
            secondary_op: Zero-argument callable used on failover
            force_secondary: Skip the primary entirely
            passthrough: Exception types re-raised as-is, without counting
                as a source failure or triggering failover
            
        Returns:
            Result of whichever operation succeeded
            
        Raises:
            BothProvidersUnavailableError: Secondary is marked unavailable
            SecondaryOperationError: Secondary ran and failed
        """
        primary = self._providers[ProviderName.PRIMARY]
        
        if force_secondary or not primary.available:
            reason = "forced" if force_secondary else "primary unavailable"
            logger.warning(f"[failover] Using secondary source ({reason})")
            return await self.execute_secondary(secondary_op, passthrough)
        
        try:
            result = await self._run_with_timeout(primary_op, ProviderName.PRIMARY)
        except passthrough:
            raise
        except Exception as e:
            logger.error(f"[failover] Primary source error: {e}")
            self._record_failure(ProviderName.PRIMARY)
            
            await self._delay(self._config.retry_delay_seconds)
            return await self.execute_secondary(secondary_op, passthrough)
        
        self._record_success(ProviderName.PRIMARY)
        return result
    
    async def execute_secondary(
        self,
        secondary_op: Operation[T],
        passthrough: ErrorTypes = (),
    ) -> T:
        """Run the secondary operation. Never falls back to the primary."""
        if not self._providers[ProviderName.SECONDARY].available:
            raise BothProvidersUnavailableError()
        
        try:
            result = await self._run_with_timeout(secondary_op, ProviderName.SECONDARY)
        except passthrough:
            raise
        except Exception as e:
            logger.error(f"[failover] Secondary source error: {e}")
            self._record_failure(ProviderName.SECONDARY)
            raise SecondaryOperationError(e) from e
        
        self._record_success(ProviderName.SECONDARY)
        return result
    
    def reset_provider(self, name: Union[ProviderName, str] = "all") -> None:
        """
        Mark the named source(s) available with a zero failure count.
        
        Args:
            name: "primary", "secondary", "all" or a ProviderName
        """
        if isinstance(name, ProviderName):
            targets = [name]
        elif name == "all":
            targets = list(ProviderName)
        else:
            try:
                targets = [ProviderName(name)]
            except ValueError:
                raise ValueError(f"Unknown provider: {name!r}") from None
        
        for target in targets:
            status = self._providers[target]
            status.available = True
            status.consecutive_failures = 0
            logger.warning(f"[failover] {target.value} source status reset")
    
    def status(self) -> FailoverStatus:
        """Snapshot of both sources."""
        return FailoverStatus(
            primary=self._providers[ProviderName.PRIMARY].copy(),
            secondary=self._providers[ProviderName.SECONDARY].copy(),
            timestamp=datetime.now(timezone.utc),
        )
    
    async def _run_with_timeout(
        self,
        operation: Operation[T],
        provider: ProviderName,
    ) -> T:
        # wait_for cancels the operation on timeout, so a late result is dropped
        try:
            return await asyncio.wait_for(
                self._invoke(operation),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise OperationTimeoutError(provider.value, self._config.timeout_seconds) from None
    
    @staticmethod
    async def _invoke(operation: Operation[T]) -> T:
        result = operation()
        if inspect.isawaitable(result):
            result = await result
        return result
    
    def _record_success(self, provider: ProviderName) -> None:
        status = self._providers[provider]
        status.available = True
        status.last_success_at = datetime.now(timezone.utc)
        
        if status.consecutive_failures > 0:
            logger.warning(
                f"[failover] {provider.value} source recovered after "
                f"{status.consecutive_failures} failures"
            )
            status.consecutive_failures = 0
    
    def _record_failure(self, provider: ProviderName) -> None:
        status = self._providers[provider]
        status.consecutive_failures += 1
        status.last_failure_at = datetime.now(timezone.utc)
        
        if status.available and status.consecutive_failures >= self._config.retry_attempts:
            status.available = False
            logger.warning(
                f"[failover] {provider.value} source marked unavailable after "
                f"{status.consecutive_failures} failures"
            )
    
    async def _delay(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)
    
    def __repr__(self) -> str:
        primary = self._providers[ProviderName.PRIMARY]
        secondary = self._providers[ProviderName.SECONDARY]
        return (
            f"<CircuitedOperation(primary={'up' if primary.available else 'down'}, "
            f"secondary={'up' if secondary.available else 'down'})>"
        )
