"""
Google Calendar Service
Handles token refresh, calendar event creation and deletion
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Protocol

import httpx

from ..config import GoogleOAuthSettings
from ..domain.scheduling.time_calculator import utc_now
from ..errors import ProviderRequestError, RemoteDeletionError, TokenRefreshError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenGrant:
    """Access token returned by the provider, plus any rotated refresh token / new expiry"""

    access_token: str
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None
    refreshed: bool = False


@dataclass
class RemoteEventSpec:
    summary: str
    start: datetime
    end: datetime
    attendees: list[str]
    description: Optional[str] = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    with_meet_link: bool = True


@dataclass(frozen=True)
class RemoteEvent:
    event_id: str
    meet_link: Optional[str] = None


class CalendarProvider(Protocol):
    """The three provider operations the booking core relies on"""

    async def refresh_token(
        self, access_token: Optional[str], refresh_token: str, expiry: Optional[datetime]
    ) -> TokenGrant: ...

    async def create_event(self, access_token: str, spec: RemoteEventSpec) -> RemoteEvent: ...

    async def delete_event(self, access_token: str, event_id: str) -> None: ...


class GoogleCalendarClient:
    """Google Calendar REST client over httpx"""

    def __init__(
        self,
        settings: GoogleOAuthSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self._transport = transport
        self._clock = clock

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.http_timeout, transport=self._transport)

    def _events_url(self, event_id: Optional[str] = None) -> str:
        url = f"{self.settings.api_base_url}/calendars/{self.settings.calendar_id}/events"
        return f"{url}/{event_id}" if event_id else url

    def token_is_fresh(self, access_token: Optional[str], expiry: Optional[datetime]) -> bool:
        """Usable without a network call: present and not within the skew window of expiry"""
        if not access_token or expiry is None:
            return False
        return expiry > self._clock() + timedelta(seconds=self.settings.expiry_skew_seconds)

    async def refresh_token(
        self, access_token: Optional[str], refresh_token: str, expiry: Optional[datetime]
    ) -> TokenGrant:
        """
        Return a usable access token, refreshing only when the current one is
        expired or about to expire.

        Raises:
            TokenRefreshError: If the provider rejects the refresh token or is unreachable
        """
        if self.token_is_fresh(access_token, expiry):
            return TokenGrant(access_token=access_token, expiry=expiry, refreshed=False)

        if not self.settings.is_configured:
            raise TokenRefreshError("Google OAuth client is not configured")

        logger.info("🔄 Google Calendar token expired, refreshing...")
        try:
            async with self._client() as client:
                response = await client.post(
                    self.settings.token_url,
                    data={
                        "client_id": self.settings.client_id,
                        "client_secret": self.settings.client_secret,
                        "refresh_token": refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Token refresh request failed: {e}")
            raise TokenRefreshError(cause=e) from e

        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.status_code} {response.text}")
            raise TokenRefreshError()

        try:
            tokens = response.json()
            new_access_token = tokens.get("access_token")
            expires_in = int(tokens.get("expires_in", 3600))
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"❌ Unreadable token refresh response: {response.text[:200]}")
            raise TokenRefreshError(cause=e) from e

        if not new_access_token:
            logger.error("❌ No access token in refresh response")
            raise TokenRefreshError()

        logger.info("✅ Google Calendar token refreshed successfully")
        return TokenGrant(
            access_token=new_access_token,
            refresh_token=tokens.get("refresh_token"),
            expiry=self._clock() + timedelta(seconds=expires_in),
            refreshed=True,
        )

    def build_event_body(self, spec: RemoteEventSpec) -> dict[str, Any]:
        event_data: dict[str, Any] = {
            "summary": spec.summary,
            "start": {"dateTime": spec.start.isoformat(), "timeZone": self.settings.timezone},
            "end": {"dateTime": spec.end.isoformat(), "timeZone": self.settings.timezone},
            "attendees": [{"email": email} for email in spec.attendees if email],
        }
        if spec.description:
            event_data["description"] = spec.description
        if spec.with_meet_link:
            event_data["conferenceData"] = {
                "createRequest": {
                    "requestId": spec.request_id,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
        return event_data

    async def create_event(self, access_token: str, spec: RemoteEventSpec) -> RemoteEvent:
        """
        Create a calendar event, with a Meet link when requested.

        Raises:
            ProviderRequestError: If the request fails or the response has no event ID
        """
        try:
            async with self._client() as client:
                response = await client.post(
                    self._events_url(),
                    headers={"Authorization": f"Bearer {access_token}"},
                    params={"conferenceDataVersion": 1 if spec.with_meet_link else 0},
                    json=self.build_event_body(spec),
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Calendar event request failed: {e}")
            raise ProviderRequestError("Failed to reach the calendar provider", cause=e) from e

        if response.status_code not in (200, 201):
            logger.error(f"❌ Failed to create calendar event: {response.status_code} {response.text}")
            raise ProviderRequestError("Failed to create calendar event", status=response.status_code)

        try:
            event = response.json()
            event_id = event.get("id")
        except (ValueError, AttributeError) as e:
            logger.error(f"❌ Unreadable calendar event response: {response.text[:200]}")
            raise ProviderRequestError(
                "Calendar event response could not be read", status=response.status_code, cause=e
            ) from e
        if not event_id:
            raise ProviderRequestError("Created calendar event missing ID", status=response.status_code)

        logger.info(f"✅ Google Calendar event created: {event_id}")
        return RemoteEvent(event_id=event_id, meet_link=event.get("hangoutLink"))

    async def delete_event(self, access_token: str, event_id: str) -> None:
        """
        Delete a calendar event. An event that is already gone counts as deleted.

        Raises:
            RemoteDeletionError: If the provider refuses or cannot be reached
        """
        try:
            async with self._client() as client:
                response = await client.delete(
                    self._events_url(event_id),
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            raise RemoteDeletionError(f"Failed to reach the calendar provider: {e}", cause=e) from e

        if response.status_code in (404, 410):
            logger.info(f"ℹ️ Google Calendar event {event_id} already removed")
            return
        if response.status_code not in (200, 204):
            raise RemoteDeletionError(
                f"Failed to delete calendar event: {response.text}", status=response.status_code
            )

        logger.info(f"✅ Google Calendar event deleted: {event_id}")
