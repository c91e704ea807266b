"""
TierPath Onboarding - Recovery Models

Recovery session record (wire/storage format) and the derived failure
analysis, strategy and result types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tierpath.models.onboarding import OnboardingStep


class FailureType(str, Enum):
    VALIDATION = "validation"
    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER = "server"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryStrategyType(str, Enum):
    RETRY = "retry"
    SKIP = "skip"
    RESET = "reset"
    MANUAL = "manual"


class DataPreservation(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


class UserAction(str, Enum):
    NONE = "none"
    CONFIRM = "confirm"
    INPUT = "input"
    CONTACT_SUPPORT = "contact_support"


class RecoveryState(str, Enum):
    """
    Lifecycle of a recovery session.

    ACTIVE is the entry state and RECOVERING marks an attempt in flight.
    The rest are terminal and accept no further attempts.
    """
    ACTIVE = "active"
    RECOVERING = "recovering"
    RESOLVED = "resolved"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"
    UNRECOVERABLE = "unrecoverable"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecoverySession(BaseModel):
    """Persisted record of an onboarding failure."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    user_id: str = Field(..., alias="userId")
    failure_point: OnboardingStep = Field(..., alias="failurePoint")
    failure_reason: str = Field(..., alias="failureReason")
    failure_timestamp: datetime = Field(..., alias="failureTimestamp")
    recovery_attempts: int = Field(0, ge=0, alias="recoveryAttempts")
    last_recovery_attempt: Optional[datetime] = Field(None, alias="lastRecoveryAttempt")
    preserved_data: Dict[str, Any] = Field(default_factory=dict, alias="preservedData")
    can_recover: bool = Field(True, alias="canRecover")
    expires_at: datetime = Field(..., alias="expiresAt")

    @field_validator("failure_timestamp", "last_recovery_attempt", "expires_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive timestamps from storage are UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at

    def state(self, max_attempts: int, now: Optional[datetime] = None) -> RecoveryState:
        """Resting state of the session as seen at `now`."""
        if self.is_expired(now):
            return RecoveryState.EXPIRED
        if self.recovery_attempts >= max_attempts:
            return RecoveryState.EXHAUSTED
        if not self.can_recover:
            return RecoveryState.UNRECOVERABLE
        return RecoveryState.ACTIVE

    def to_wire(self) -> Dict[str, Any]:
        """camelCase payload with ISO-8601 dates."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_storage(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_storage(cls, raw: Optional[str]) -> Optional["RecoverySession"]:
        """Parse a stored session; anything unreadable counts as not found."""
        if not raw:
            return None
        try:
            return cls.model_validate_json(raw)
        except ValidationError:
            return None


@dataclass
class FailureAnalysis:
    """Classification of a failure reason. Derived, never stored."""
    failure_type: FailureType
    severity: Severity
    recoverable: bool
    suggested_actions: List[str]
    data_loss: bool
    affected_fields: List[str] = field(default_factory=list)


@dataclass
class RecoveryStrategy:
    """How a failure will be recovered. Derived, never stored."""
    strategy: RecoveryStrategyType
    description: str
    estimated_minutes: int
    data_preservation: DataPreservation
    user_action: UserAction


@dataclass
class RecoveryResult:
    """Outcome of a recovery attempt or a resume."""
    success: bool
    resumed_step: OnboardingStep
    preserved_data: Dict[str, Any]
    session_id: str
    error: Optional[str] = None
    analysis: Optional[FailureAnalysis] = None
    strategy: Optional[RecoveryStrategy] = None
    state: Optional[RecoveryState] = None
    attempts: Optional[int] = None
    onboarding_session_id: Optional[str] = None  # set when the wizard session is reopened
