"""
Source Failover - Configuration.

Defaults can be overridden from environment variables:
- FAILOVER_TIMEOUT_SECONDS
- FAILOVER_RETRY_ATTEMPTS
- FAILOVER_RETRY_DELAY_SECONDS
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass
class FailoverConfig:
    """
    Configuration for CircuitedOperation.
    
    retry_attempts is the consecutive-failure threshold at which a source
    is marked unavailable; retry_delay_seconds is the fixed pause between
    a failed primary and the secondary attempt.
    """
    timeout_seconds: float = 10.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    
    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        if self.retry_delay_seconds < 0:
            raise ValueError("retry_delay_seconds must not be negative")
    
    @classmethod
    def from_env(cls) -> "FailoverConfig":
        """Load configuration from environment variables."""
        load_dotenv()
        return cls(
            timeout_seconds=float(os.getenv("FAILOVER_TIMEOUT_SECONDS", "10.0")),
            retry_attempts=int(os.getenv("FAILOVER_RETRY_ATTEMPTS", "3")),
            retry_delay_seconds=float(os.getenv("FAILOVER_RETRY_DELAY_SECONDS", "1.0")),
        )
