"""
Credential refresh protocol

Refreshing and persisting are two explicit steps:

1. ``ensure_fresh_token`` asks the provider for a usable access token and never
   touches storage.
2. ``persist_token_grant`` writes a refreshed grant back to the credential row
   and commits it.

``obtain_access_token`` runs both in order; booking code goes through it so the
persist step cannot be skipped. The credential row is not locked, so two requests
refreshing the same expired token concurrently will both refresh and the last
write wins.
"""

import logging
from typing import Optional

from cryptography.fernet import InvalidToken
from sqlalchemy.orm import Session

from ...crypto import decrypt_token
from ...database import UnitOfWorkResult, run_unit_of_work
from ...errors import TokenRefreshError
from ...models import Integration
from ...services.google_calendar_service import CalendarProvider, TokenGrant
from .repository import IntegrationRepository

logger = logging.getLogger(__name__)


async def ensure_fresh_token(
    provider: CalendarProvider,
    access_token: Optional[str],
    refresh_token: Optional[str],
    expiry,
) -> TokenGrant:
    """
    Return a currently usable access token.

    Without a refresh token the stored access token is returned as-is, even when
    expired, and the provider is not contacted.

    Raises:
        TokenRefreshError: If the provider rejects the refresh
    """
    if not refresh_token:
        return TokenGrant(access_token=access_token or "", expiry=expiry, refreshed=False)

    grant = await provider.refresh_token(access_token, refresh_token, expiry)
    if grant.access_token != access_token and not grant.refreshed:
        grant = TokenGrant(grant.access_token, grant.refresh_token, grant.expiry, refreshed=True)
    return grant


def persist_token_grant(db: Session, integration: Integration, grant: TokenGrant) -> None:
    """
    Store a refreshed grant (including a rotated refresh token) and commit.

    Raises:
        AppError: If the credential could not be saved
    """

    def work(session: Session) -> UnitOfWorkResult[Integration]:
        saved = IntegrationRepository.save_credential(
            session, integration, grant.access_token, grant.refresh_token, grant.expiry
        )
        return UnitOfWorkResult.success(saved)

    run_unit_of_work(db, work).unwrap()
    logger.info(f"✅ Persisted refreshed token for user {integration.user_id} ({integration.app_type})")


async def obtain_access_token(db: Session, integration: Integration, provider: CalendarProvider) -> str:
    """
    Decrypt the stored credential, refresh it if needed and persist any new token
    before returning it.

    Raises:
        TokenRefreshError: If the stored tokens are unusable or the refresh is rejected
    """
    try:
        access_token = decrypt_token(integration.access_token)
        refresh_token = decrypt_token(integration.refresh_token)
    except InvalidToken as e:
        raise TokenRefreshError("Stored calendar credentials could not be read", cause=e) from e

    grant = await ensure_fresh_token(provider, access_token, refresh_token, integration.expiry_date)
    if grant.refreshed:
        persist_token_grant(db, integration, grant)
    return grant.access_token
