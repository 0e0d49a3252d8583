"""
Source Failover Models - Per-source availability state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ProviderName(Enum):
    """Named sources tracked by the executor."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass
class ProviderStatus:
    """
    Availability state of one operation source.
    
    A source is demoted (available=False) once its consecutive failures
    reach the configured threshold. It is restored by an explicit reset
    or by the next successful call that reaches it.
    """
    available: bool = True
    consecutive_failures: int = 0
    last_failure_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    
    def copy(self) -> "ProviderStatus":
        return ProviderStatus(
            available=self.available,
            consecutive_failures=self.consecutive_failures,
            last_failure_at=self.last_failure_at,
            last_success_at=self.last_success_at,
        )
    
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "available": self.available,
            "consecutive_failures": self.consecutive_failures,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
        }


@dataclass(frozen=True)
class FailoverStatus:
    """Read-only snapshot returned by CircuitedOperation.status()."""
    primary: ProviderStatus
    secondary: ProviderStatus
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    
    def get(self, name: ProviderName) -> ProviderStatus:
        return self.primary if name == ProviderName.PRIMARY else self.secondary
    
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "primary": self.primary.to_dict(),
            "secondary": self.secondary.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }
