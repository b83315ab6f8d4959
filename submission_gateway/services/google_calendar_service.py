"""
Google Calendar Service
Handles booking event creation, updates, and deletion on the business calendar
"""

import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from ..config import (
    BUSINESS_TIMEZONE,
    GOOGLE_CALENDAR_ID,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REFRESH_TOKEN,
)
from ..errors import ConfigurationError, UpstreamFailure

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"

# Google Calendar color ids, matched by substring of the service type
SERVICE_COLORS = {
    "residential": "2",  # Green
    "end of lease": "6",  # Orange
    "bond": "6",  # Orange
    "airbnb": "3",  # Purple
    "commercial": "1",  # Blue
    "office": "1",  # Blue
    "deep clean": "11",  # Red
}
DEFAULT_COLOR = "2"


def get_color_id(service_type: str) -> str:
    lower = service_type.lower()
    for key, color_id in SERVICE_COLORS.items():
        if key in lower:
            return color_id
    return DEFAULT_COLOR


def estimate_duration(service_type: str, bedrooms: Optional[int] = None) -> int:
    """Estimated job length in minutes"""
    lower = service_type.lower()
    if "end of lease" in lower or "bond" in lower:
        return max(180, bedrooms * 60) if bedrooms else 300
    if "commercial" in lower or "office" in lower:
        return 240
    if "airbnb" in lower:
        return max(90, bedrooms * 45) if bedrooms else 120
    if "deep" in lower:
        return 240
    return max(120, bedrooms * 45) if bedrooms else 180


def booking_event_id(reference_id: str) -> str:
    """Client-assigned event id, one per submission (hex digits are valid base32hex)"""
    return hashlib.sha1(reference_id.encode()).hexdigest()


class BookingEvent(BaseModel):
    reference_id: str
    customer_name: str
    address: str
    service_type: str
    start: datetime  # Local business time
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    bedrooms: Optional[int] = None
    price: Optional[float] = None
    cleaner_name: Optional[str] = None
    notes: Optional[str] = None
    duration_minutes: Optional[int] = None

    @property
    def end(self) -> datetime:
        minutes = self.duration_minutes or estimate_duration(self.service_type, self.bedrooms)
        return self.start + timedelta(minutes=minutes)


def build_event_body(event: BookingEvent, timezone: str = BUSINESS_TIMEZONE) -> dict[str, Any]:
    description = [
        f"📋 Service: {event.service_type}",
        f"👤 Customer: {event.customer_name}",
        f"📱 Phone: {event.customer_phone or 'N/A'}",
        f"📧 Email: {event.customer_email or 'N/A'}",
        f"📍 Address: {event.address}",
        f"💰 Price: ${event.price if event.price is not None else 'TBD'}",
        f"🔗 Reference: {event.reference_id}",
    ]
    if event.cleaner_name:
        description.append(f"👷 Assigned: {event.cleaner_name}")
    if event.notes:
        description.append(f"📝 Notes: {event.notes}")

    return {
        "summary": f"🧹 {event.service_type} - {event.customer_name}",
        "description": "\n".join(description),
        "location": event.address,
        "start": {"dateTime": event.start.isoformat(), "timeZone": timezone},
        "end": {"dateTime": event.end.isoformat(), "timeZone": timezone},
        "colorId": get_color_id(event.service_type),
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "popup", "minutes": 60},  # 1 hour before
                {"method": "popup", "minutes": 1440},  # 1 day before
            ],
        },
    }


class GoogleCalendarService:
    def __init__(
        self,
        client_id: Optional[str] = GOOGLE_CLIENT_ID,
        client_secret: Optional[str] = GOOGLE_CLIENT_SECRET,
        refresh_token: Optional[str] = GOOGLE_REFRESH_TOKEN,
        calendar_id: str = GOOGLE_CALENDAR_ID,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.calendar_id = calendar_id
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def _events_url(self, event_id: Optional[str] = None) -> str:
        url = f"{GOOGLE_CALENDAR_API}/calendars/{quote(self.calendar_id, safe='')}/events"
        return f"{url}/{event_id}" if event_id else url

    async def get_access_token(self, client: httpx.AsyncClient) -> str:
        """Exchange the stored refresh token for a short-lived access token"""
        if not self.configured:
            raise ConfigurationError("google_calendar")

        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            raise UpstreamFailure("google_calendar", "token refresh failed", response.status_code)

        access_token = response.json().get("access_token")
        if not access_token:
            logger.error("❌ No access token in refresh response")
            raise UpstreamFailure("google_calendar", "no access token in refresh response")
        return access_token

    async def create_event(self, event: BookingEvent) -> str:
        """
        Create a booking event

        The event id is derived from the submission reference, so a repeated
        create for the same booking returns the existing event.

        Returns:
            Google event id
        """
        if not self.configured:
            raise ConfigurationError("google_calendar")

        event_id = booking_event_id(event.reference_id)
        async with httpx.AsyncClient(transport=self.transport) as client:
            access_token = await self.get_access_token(client)
            response = await client.post(
                self._events_url(),
                headers={"Authorization": f"Bearer {access_token}"},
                json={"id": event_id, **build_event_body(event)},
            )

        # 409 means an event with this id already exists
        if response.status_code == 409:
            logger.info(f"Calendar event {event_id} already exists for {event.reference_id}")
            return event_id

        if response.status_code not in [200, 201]:
            logger.error(f"❌ Failed to create calendar event: {response.text}")
            raise UpstreamFailure("google_calendar", "event creation failed", response.status_code)

        event_id = response.json().get("id", event_id)
        logger.info(f"✅ Created Google Calendar event {event_id} for {event.reference_id}")
        return event_id

    async def update_event(self, event_id: str, event: BookingEvent) -> str:
        if not self.configured:
            raise ConfigurationError("google_calendar")

        async with httpx.AsyncClient(transport=self.transport) as client:
            access_token = await self.get_access_token(client)
            response = await client.put(
                self._events_url(event_id),
                headers={"Authorization": f"Bearer {access_token}"},
                json=build_event_body(event),
            )

        if response.status_code != 200:
            logger.error(f"❌ Failed to update calendar event: {response.text}")
            raise UpstreamFailure("google_calendar", "event update failed", response.status_code)

        logger.info(f"✅ Updated Google Calendar event {event_id}")
        return event_id

    async def delete_event(self, event_id: str) -> None:
        if not self.configured:
            raise ConfigurationError("google_calendar")

        async with httpx.AsyncClient(transport=self.transport) as client:
            access_token = await self.get_access_token(client)
            response = await client.delete(
                self._events_url(event_id),
                headers={"Authorization": f"Bearer {access_token}"},
            )

        # 410 means the event was already deleted
        if response.status_code not in [200, 204, 410]:
            logger.error(f"❌ Failed to delete calendar event: {response.text}")
            raise UpstreamFailure("google_calendar", "event deletion failed", response.status_code)

        logger.info(f"✅ Deleted Google Calendar event {event_id}")
