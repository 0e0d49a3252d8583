"""
Circuited Operation Tests.

============================================================
PURPOSE
============================================================
Unit tests for the primary/secondary executor.

TEST CATEGORIES:
- Routing tests: Primary success, failover, forced secondary
- Breaker tests: Demotion after consecutive failures, recovery
- Timeout tests: Deadline exceeded counts as a failure
- Reset tests: Restoring sources

============================================================
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from source_failover import (
    BothProvidersUnavailableError,
    CircuitedOperation,
    FailoverConfig,
    OperationTimeoutError,
    ProviderName,
    SecondaryOperationError,
)


def failing(message: str = "primary down"):
    async def operation():
        raise RuntimeError(message)
    return operation


def returning(value):
    async def operation():
        return value
    return operation


@pytest.fixture
def executor():
    executor = CircuitedOperation(
        FailoverConfig(timeout_seconds=0.2, retry_attempts=3, retry_delay_seconds=1.0)
    )
    with patch.object(executor, "_delay", AsyncMock()):
        yield executor


# =============================================================================
# ROUTING TESTS
# =============================================================================

class TestRouting:
    """Tests for choosing between primary and secondary."""
    
    @pytest.mark.asyncio
    async def test_primary_success_skips_secondary(self, executor):
        """Secondary must not run when primary succeeds."""
        secondary = AsyncMock(return_value="secondary")
        
        result = await executor.execute(returning("primary"), secondary)
        
        assert result == "primary"
        secondary.assert_not_called()
        assert executor.status().primary.last_success_at is not None
    
    @pytest.mark.asyncio
    async def test_failover_after_primary_error(self, executor):
        """Primary error falls back to secondary after the configured delay."""
        result = await executor.execute(failing(), returning("secondary"))
        
        assert result == "secondary"
        executor._delay.assert_awaited_once_with(1.0)
        status = executor.status()
        assert status.primary.consecutive_failures == 1
        assert status.primary.available is True
    
    @pytest.mark.asyncio
    async def test_force_secondary_never_calls_primary(self, executor):
        """Forced failover goes straight to secondary."""
        primary = AsyncMock(return_value="primary")
        
        result = await executor.execute(primary, returning("secondary"), force_secondary=True)
        
        assert result == "secondary"
        primary.assert_not_called()
        executor._delay.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_sync_operations_supported(self, executor):
        """Plain callables work as well as coroutine functions."""
        result = await executor.execute(lambda: 42, lambda: 0)
        
        assert result == 42
    
    @pytest.mark.asyncio
    async def test_secondary_failure_is_wrapped(self, executor):
        """A failing secondary surfaces as SecondaryOperationError."""
        with pytest.raises(SecondaryOperationError) as exc_info:
            await executor.execute(failing(), failing("secondary down"))
        
        assert exc_info.value.message == "Operation failed: secondary down"
        assert isinstance(exc_info.value.original_error, RuntimeError)
        assert executor.status().secondary.consecutive_failures == 1


# =============================================================================
# BREAKER TESTS
# =============================================================================

class TestBreaker:
    """Tests for per-source demotion."""
    
    @pytest.mark.asyncio
    async def test_primary_demoted_after_threshold(self, executor):
        """Primary becomes unavailable after retry_attempts failures."""
        for _ in range(3):
            await executor.execute(failing(), returning("secondary"))
        
        status = executor.status()
        assert status.primary.available is False
        assert status.primary.consecutive_failures == 3
    
    @pytest.mark.asyncio
    async def test_demoted_primary_is_not_invoked(self, executor):
        """Once demoted, execute() routes straight to secondary."""
        for _ in range(3):
            await executor.execute(failing(), returning("secondary"))
        executor._delay.reset_mock()
        
        primary = AsyncMock(return_value="primary")
        result = await executor.execute(primary, returning("secondary"))
        
        assert result == "secondary"
        primary.assert_not_called()
        executor._delay.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, executor):
        """A primary success clears its consecutive failures."""
        await executor.execute(failing(), returning("secondary"))
        await executor.execute(failing(), returning("secondary"))
        
        await executor.execute(returning("primary"), returning("secondary"))
        
        assert executor.status().primary.consecutive_failures == 0
        assert executor.status().primary.available is True
    
    @pytest.mark.asyncio
    async def test_both_unavailable(self, executor):
        """A demoted secondary raises without running anything."""
        for _ in range(3):
            with pytest.raises(SecondaryOperationError):
                await executor.execute(failing(), failing("secondary down"))
        
        secondary = AsyncMock(return_value="secondary")
        with pytest.raises(BothProvidersUnavailableError):
            await executor.execute(failing(), secondary)
        
        secondary.assert_not_called()
    
    @pytest.mark.asyncio
    async def test_status_is_a_snapshot(self, executor):
        """Mutating a returned snapshot does not affect the executor."""
        snapshot = executor.status()
        snapshot.primary.available = False
        
        assert executor.status().primary.available is True


# =============================================================================
# TIMEOUT TESTS
# =============================================================================

class TestTimeout:
    """Tests for the per-operation deadline."""
    
    @pytest.mark.asyncio
    async def test_primary_timeout_counts_as_failure(self, executor):
        """A slow primary fails over and increments its failure count."""
        completed = []
        
        async def slow_primary():
            await asyncio.sleep(5)
            completed.append(True)
            return "late"
        
        result = await executor.execute(slow_primary, returning("secondary"))
        
        assert result == "secondary"
        assert executor.status().primary.consecutive_failures == 1
        assert completed == []
    
    @pytest.mark.asyncio
    async def test_secondary_timeout_message(self, executor):
        """A slow secondary reports the timeout through the wrapper."""
        async def slow():
            await asyncio.sleep(5)
        
        with pytest.raises(SecondaryOperationError) as exc_info:
            await executor.execute(slow, slow)
        
        original = exc_info.value.original_error
        assert isinstance(original, OperationTimeoutError)
        assert original.message == "Secondary operation timeout after 0.2s"


# =============================================================================
# RESET TESTS
# =============================================================================

class TestReset:
    """Tests for reset_provider()."""
    
    @pytest.mark.asyncio
    async def test_reset_all_restores_both(self, executor):
        for _ in range(3):
            with pytest.raises(SecondaryOperationError):
                await executor.execute(failing(), failing())
        
        executor.reset_provider("all")
        
        status = executor.status()
        for provider in (status.primary, status.secondary):
            assert provider.available is True
            assert provider.consecutive_failures == 0
    
    @pytest.mark.asyncio
    async def test_reset_single_provider(self, executor):
        for _ in range(3):
            with pytest.raises(SecondaryOperationError):
                await executor.execute(failing(), failing())
        
        executor.reset_provider(ProviderName.PRIMARY)
        
        status = executor.status()
        assert status.primary.available is True
        assert status.secondary.available is False
    
    def test_reset_unknown_provider(self, executor):
        with pytest.raises(ValueError):
            executor.reset_provider("tertiary")
    
    @pytest.mark.asyncio
    async def test_demoted_secondary_stays_down_until_reset(self, executor):
        """A demoted secondary stays down until reset."""
        for _ in range(3):
            with pytest.raises(SecondaryOperationError):
                await executor.execute_secondary(failing())
        
        with pytest.raises(BothProvidersUnavailableError):
            await executor.execute_secondary(returning("secondary"))
        
        executor.reset_provider("secondary")
        assert await executor.execute_secondary(returning("secondary")) == "secondary"


class TestConfig:
    """Tests for FailoverConfig."""
    
    def test_defaults(self):
        config = FailoverConfig()
        
        assert config.timeout_seconds == 10.0
        assert config.retry_attempts == 3
        assert config.retry_delay_seconds == 1.0
    
    def test_rejects_invalid_values(self):
        with pytest.raises(ValueError):
            FailoverConfig(retry_attempts=0)
        with pytest.raises(ValueError):
            FailoverConfig(timeout_seconds=0)
    
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("FAILOVER_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("FAILOVER_RETRY_ATTEMPTS", "5")
        monkeypatch.setenv("FAILOVER_RETRY_DELAY_SECONDS", "0")
        
        config = FailoverConfig.from_env()
        
        assert config.timeout_seconds == 2.5
        assert config.retry_attempts == 5
        assert config.retry_delay_seconds == 0.0


class TestPassthrough:
    """Tests for exception types that bypass failover."""
    
    @pytest.mark.asyncio
    async def test_primary_passthrough_not_recorded(self, executor):
        """A passthrough error from primary reaches the caller untouched."""
        secondary = AsyncMock(return_value="secondary")
        
        for _ in range(3):
            with pytest.raises(KeyError):
                await executor.execute(
                    AsyncMock(side_effect=KeyError("bad input")), secondary,
                    passthrough=(KeyError,),
                )
        
        secondary.assert_not_called()
        executor._delay.assert_not_awaited()
        assert executor.status().primary.available is True
        assert executor.status().primary.consecutive_failures == 0
    
    @pytest.mark.asyncio
    async def test_secondary_passthrough_not_wrapped(self, executor):
        with pytest.raises(KeyError):
            await executor.execute(
                failing(), AsyncMock(side_effect=KeyError("cancelled")),
                passthrough=(KeyError,),
            )
        
        status = executor.status()
        assert status.primary.consecutive_failures == 1
        assert status.secondary.consecutive_failures == 0
    
    @pytest.mark.asyncio
    async def test_other_errors_still_fail_over(self, executor):
        result = await executor.execute(
            failing(), returning("secondary"), passthrough=(KeyError,),
        )
        
        assert result == "secondary"
