# src/secbrain/auth/session.py

"""
AuthSession: drives the identity state machine from credential events.

Sign-in order is fixed:
1) validate credentials (nothing is written if this fails),
2) migrate anonymous records to the new owner id,
3) switch the IdentityContext, which schedules every feature module reload.

Migrating before the switch means reloads already see the re-owned records.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ..core.errors import IdentityTransitionError
from ..core.identity import IdentityContext, IdentityState, IdentityTransition
from ..core.ports import CredentialService, Principal
from ..core.records import OWNER_SCOPED_COLLECTIONS
from ..storage.gateway import PersistenceGateway
from ..storage.migration import FailedRecord, MigrationReport, migrate_ownership

logger = logging.getLogger(__name__)

TokenSink = Callable[[str | None], None]


@dataclass(frozen=True, slots=True)
class SignInResult:
    principal: Principal
    migration: MigrationReport
    transition: IdentityTransition


class AuthSession:
    def __init__(
        self,
        identity: IdentityContext,
        gateway: PersistenceGateway,
        credentials: CredentialService,
        *,
        collections: Iterable[str] = OWNER_SCOPED_COLLECTIONS,
        on_token: TokenSink | None = None,
    ) -> None:
        self._identity = identity
        self._gateway = gateway
        self._credentials = credentials
        self._collections = tuple(collections)
        self._on_token = on_token
        self._principal: Principal | None = None
        self.last_migration: MigrationReport | None = None

    @property
    def principal(self) -> Principal | None:
        return self._principal

    def _set_token(self, token: str | None) -> None:
        if self._on_token is not None:
            self._on_token(token)

    async def start(self) -> IdentityTransition | None:
        """Enter the anonymous state on first start; no-op afterwards."""
        if self._identity.state != IdentityState.UNINITIALIZED:
            return None
        return await self._identity.enter_anonymous()

    async def sign_in_with_password(self, email: str, password: str) -> SignInResult:
        """
        Raises ValidationError / AuthError before anything is migrated.
        Migration failures do not abort the sign-in; they are in result.migration.
        """
        if self._identity.is_authenticated:
            raise IdentityTransitionError("Already signed in; sign out first")
        await self.start()

        principal = await self._credentials.sign_in_with_password(email, password)
        logger.info("Credentials accepted for uid=%s", principal.uid)

        # Writes issued by the migration already carry the new user's token.
        self._set_token(principal.id_token)

        migration = await migrate_ownership(
            self._gateway,
            from_owner_id=self._identity.anonymous_owner_id,
            to_owner_id=principal.uid,
            collections=self._collections,
        )
        self.last_migration = migration

        try:
            transition = await self._identity.authenticate(principal.uid)
        except IdentityTransitionError:
            self._set_token(None)
            raise
        self._principal = principal
        return SignInResult(principal=principal, migration=migration, transition=transition)

    async def sign_out(self) -> IdentityTransition:
        """Back to anonymous. Records stay owned by the signed-out user."""
        if not self._identity.is_authenticated:
            raise IdentityTransitionError("Not signed in")
        self._set_token(None)
        self._principal = None
        return await self._identity.enter_anonymous()

    async def retry_migration(self, failed: Iterable[FailedRecord]) -> MigrationReport:
        """Retry exactly the records a previous migration reported as failed."""
        owner = self._identity.owner_id
        if not self._identity.is_authenticated or owner is None:
            raise IdentityTransitionError("Migration retry requires a signed-in user")

        report = await migrate_ownership(
            self._gateway,
            from_owner_id=self._identity.anonymous_owner_id,
            to_owner_id=owner,
            only=list(failed),
        )
        self.last_migration = report
        return report
