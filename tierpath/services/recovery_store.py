"""
TierPath Onboarding - Recovery Session Store

Two-tier persistence for recovery sessions.

Write policy: remote first, then always local. A remote failure is
logged and never raised; the local copy stays authoritative until the
remote write succeeds on a later update.

Read policy: remote first. The local copy is used only when the remote
call fails or has no record. The two copies are never merged. Expired
sessions read as absent and are evicted from local storage.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from tierpath.models.recovery import RecoverySession, utcnow
from tierpath.services.kv_store import KeyValueStore
from tierpath.services.onboarding_api_client import OnboardingAPIClient
from tierpath.utils.error_handling import OnboardingAPIException

logger = logging.getLogger(__name__)

LOCAL_KEY_PREFIX = "recovery_"


def local_key(session_id: str) -> str:
    return f"{LOCAL_KEY_PREFIX}{session_id}"


class RecoverySessionStore:
    """Remote + local fallback storage for RecoverySession records."""

    def __init__(self, api_client: OnboardingAPIClient, local: KeyValueStore):
        self.api_client = api_client
        self.local = local

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create(self, session: RecoverySession) -> bool:
        """
        Persist a new session to both tiers.

        Returns:
            True if the remote write succeeded
        """
        remote_ok = True
        try:
            await self.api_client.create_recovery_session(session.to_wire())
        except OnboardingAPIException as e:
            remote_ok = False
            logger.warning(f"Remote create failed for recovery session {session.session_id}: {e.message}")

        await self._write_local(session)
        return remote_ok

    async def save(self, session: RecoverySession) -> bool:
        """Persist the mutable fields of an existing session to both tiers."""
        updates: Dict[str, Any] = {
            "recoveryAttempts": session.recovery_attempts,
            "canRecover": session.can_recover,
        }
        if session.last_recovery_attempt is not None:
            updates["lastRecoveryAttempt"] = session.last_recovery_attempt.isoformat()

        remote_ok = True
        try:
            await self.api_client.update_recovery_session(session.session_id, updates)
        except OnboardingAPIException as e:
            remote_ok = False
            logger.warning(f"Remote update failed for recovery session {session.session_id}: {e.message}")

        await self._write_local(session)
        return remote_ok

    async def clear(self, session_id: str) -> None:
        """Remove a session from both tiers."""
        try:
            await self.api_client.clear_recovery_session(session_id)
        except OnboardingAPIException as e:
            logger.warning(f"Remote clear failed for recovery session {session_id}: {e.message}")

        await self.local.delete(local_key(session_id))

    # =========================================================================
    # READS
    # =========================================================================

    async def get(self, session_id: str, now: Optional[datetime] = None) -> Optional[RecoverySession]:
        """Load a live session, or None when absent, unreadable or expired."""
        now = now or utcnow()
        session = await self._read_remote(session_id)
        if session is None:
            session = RecoverySession.from_storage(await self.local.get(local_key(session_id)))

        if session is None:
            return None

        if session.is_expired(now):
            logger.info(f"Recovery session {session_id} expired at {session.expires_at.isoformat()}")
            await self.local.delete(local_key(session_id))
            return None

        return session

    async def list_active(self, user_id: str, now: Optional[datetime] = None) -> List[RecoverySession]:
        """Live sessions of a user, remote first, local scan on remote failure."""
        now = now or utcnow()
        try:
            records = await self.api_client.get_active_recovery_sessions(user_id)
            sessions = [s for s in (self._parse(record) for record in records) if s is not None]
        except OnboardingAPIException as e:
            logger.warning(f"Remote list failed for recovery sessions of {user_id}: {e.message}")
            sessions = []
            for key in await self.local.keys(LOCAL_KEY_PREFIX):
                session = RecoverySession.from_storage(await self.local.get(key))
                if session is not None:
                    sessions.append(session)

        return [
            session for session in sessions
            if session.user_id == user_id and not session.is_expired(now)
        ]

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _read_remote(self, session_id: str) -> Optional[RecoverySession]:
        try:
            record = await self.api_client.get_recovery_session(session_id)
        except OnboardingAPIException as e:
            logger.warning(f"Remote read failed for recovery session {session_id}, using local copy: {e.message}")
            return None
        return self._parse(record) if record else None

    async def _write_local(self, session: RecoverySession) -> None:
        ttl = int((session.expires_at - utcnow()).total_seconds())
        if not await self.local.set(local_key(session.session_id), session.to_storage(), ttl=max(ttl, 1)):
            logger.error(f"Local write failed for recovery session {session.session_id}")

    @staticmethod
    def _parse(record: Dict[str, Any]) -> Optional[RecoverySession]:
        try:
            return RecoverySession.model_validate(record)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable recovery session record: {e.error_count()} errors")
            return None
