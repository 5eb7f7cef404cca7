"""Reconciles third-party sign-ins with local accounts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from auth.config import AuthConfig
from auth.exceptions import IdentityConflictError
from auth.interfaces.profile_store import ProfileStore
from auth.interfaces.user_store import DuplicateAccountError, UserStore

logger = logging.getLogger(__name__)

OUTCOME_EXISTING = "existing"
OUTCOME_LINKED = "linked"
OUTCOME_CREATED = "created"


@dataclass(frozen=True)
class OAuthIdentity:
    """What a provider asserts after its own code exchange."""

    provider: str
    provider_id: str
    email: str
    email_verified: bool
    profile_hints: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedIdentity:
    account: dict[str, Any]
    outcome: str
    profile_stub_created: bool = False

    @property
    def is_new_account(self) -> bool:
        return self.outcome == OUTCOME_CREATED


class IdentityResolver:
    """
    Resolution order, first match wins:

    1. an account already linked to ``(provider, provider_id)``;
    2. an account with the same email, which gets linked;
    3. a new account, plus a best-effort profile stub.

    A concurrent create that trips a uniqueness constraint sends us back to
    step 1 instead of producing a second account.
    """

    MAX_ATTEMPTS = 3

    def __init__(self, config: AuthConfig, user_store: UserStore, profile_store: ProfileStore) -> None:
        self._config = config
        self._users = user_store
        self._profiles = profile_store

    async def resolve_oauth_identity(self, identity: OAuthIdentity) -> ResolvedIdentity:
        if not identity.provider_id:
            raise IdentityConflictError("Provider did not supply an account id", reason="missing_provider_id")
        if not identity.email:
            raise IdentityConflictError("Provider account has no email", reason="missing_email")

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            account = await self._users.get_by_provider(identity.provider, identity.provider_id)
            if account:
                return ResolvedIdentity(account=account, outcome=OUTCOME_EXISTING)

            account = await self._users.get_by_email(identity.email)
            if account:
                try:
                    linked = await self._link(account, identity)
                except DuplicateAccountError:
                    logger.info("Link of %s identity raced, retrying (attempt %d)", identity.provider, attempt)
                    continue
                return ResolvedIdentity(account=linked, outcome=OUTCOME_LINKED)

            try:
                created = await self._users.create_account(
                    {
                        "email": identity.email,
                        "name": identity.profile_hints.get("display_name"),
                        "hashed_password": None,
                        "auth_provider": identity.provider,
                        "provider_id": identity.provider_id,
                        "is_email_verified": bool(identity.email_verified),
                    }
                )
            except DuplicateAccountError:
                logger.info("Create of %s identity raced, retrying (attempt %d)", identity.provider, attempt)
                continue

            stub_created = await self._create_profile_stub(created, identity)
            return ResolvedIdentity(account=created, outcome=OUTCOME_CREATED, profile_stub_created=stub_created)

        raise IdentityConflictError(
            "Could not sign in with this account, please retry",
            reason="resolution_retries_exhausted",
        )

    async def _link(self, account: dict[str, Any], identity: OAuthIdentity) -> dict[str, Any]:
        if self._config.OAUTH_LINK_REQUIRES_VERIFIED_EMAIL and not identity.email_verified:
            logger.warning(
                "Refusing to link unverified %s email to account %s", identity.provider, account["id"]
            )
            raise IdentityConflictError(
                "An account with this email already exists. Sign in with your password first.",
                reason="unverified_provider_email",
            )
        if (
            account.get("provider_id")
            and account.get("auth_provider") == identity.provider
            and account["provider_id"] != identity.provider_id
        ):
            raise IdentityConflictError(
                "This email is already linked to another account at this provider",
                reason="provider_id_mismatch",
            )

        # hashed_password is left alone so password sign-in keeps working.
        updates: dict[str, Any] = {
            "auth_provider": identity.provider,
            "provider_id": identity.provider_id,
        }
        if identity.email_verified:
            updates["is_email_verified"] = True
        if not account.get("name") and identity.profile_hints.get("display_name"):
            updates["name"] = identity.profile_hints["display_name"]

        linked = await self._users.update_account(account["id"], updates)
        logger.info("Linked %s identity to account %s", identity.provider, account["id"])
        return linked

    async def _create_profile_stub(self, account: dict[str, Any], identity: OAuthIdentity) -> bool:
        hints = identity.profile_hints
        if not (hints.get("given_name") or hints.get("family_name")):
            return False
        try:
            await self._profiles.create_profile_stub(
                account["id"],
                {
                    "first_name": hints.get("given_name") or "",
                    "middle_name": "",
                    "last_name": hints.get("family_name") or "",
                    "email_id": account["email"],
                },
            )
        except Exception as exc:
            logger.warning("Profile stub creation failed for account %s: %s", account["id"], exc)
            return False
        return True
