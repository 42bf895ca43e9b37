"""Strava client: fetch completed activities with a bearer credential.

The OAuth handshake happens elsewhere; this module only needs a valid access
token and, optionally, a way to refresh it.

Public API:
    ExternalActivity
    StravaCredentials
    StravaClient(credentials, refresher=None, http_client=None)
    refresh_credentials(credentials, client_id, client_secret, http_client=None)
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx

logger = logging.getLogger(__name__)

API_BASE_URL = "https://www.strava.com/api/v3"
TOKEN_URL = "https://www.strava.com/oauth/token"
FETCH_TIMEOUT_SECONDS = 15.0
REFRESH_BUFFER = timedelta(minutes=5)
DEFAULT_DAYS = 30
DEFAULT_PER_PAGE = 50


class ProviderError(Exception):
    """The activity provider could not return activities."""

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class AuthenticationError(ProviderError):
    """Token expired or invalid and could not be refreshed."""

    def __init__(self, message: str):
        super().__init__(message, retryable=False)


class RateLimitError(ProviderError):
    def __init__(self, message: str, retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__(message, retryable=True)


@dataclass(frozen=True)
class ExternalActivity:
    """An activity as received from the provider, before translation."""

    id: str
    name: str
    type: str
    start: datetime
    distance_m: float
    moving_time_s: int
    average_heartrate: float | None = None
    elevation_gain_m: float | None = None
    calories: float | None = None

    @classmethod
    def from_api(cls, data: dict) -> "ExternalActivity | None":
        """Parse one activity record; None when a required field is missing."""
        try:
            raw_start = data.get("start_date_local") or data["start_date"]
            start = datetime.fromisoformat(str(raw_start).replace("Z", "+00:00"))
            return cls(
                id=str(data["id"]),
                name=str(data.get("name") or ""),
                type=str(data.get("type") or data.get("sport_type") or ""),
                # start_date_local is wall-clock time tagged as UTC; keep it naive
                start=start.replace(tzinfo=None),
                distance_m=float(data.get("distance") or 0.0),
                moving_time_s=int(data["moving_time"]),
                average_heartrate=data.get("average_heartrate"),
                elevation_gain_m=data.get("total_elevation_gain"),
                calories=data.get("calories"),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass
class StravaCredentials:
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    def is_expiring(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expires_at < now + REFRESH_BUFFER

    @classmethod
    def from_env(cls) -> "StravaCredentials | None":
        token = os.environ.get("STRAVA_ACCESS_TOKEN")
        if not token:
            return None
        expires_raw = os.environ.get("STRAVA_EXPIRES_AT")
        expires_at = (
            datetime.fromtimestamp(float(expires_raw), tz=timezone.utc) if expires_raw else None
        )
        return cls(
            access_token=token,
            refresh_token=os.environ.get("STRAVA_REFRESH_TOKEN"),
            expires_at=expires_at,
        )


Refresher = Callable[[StravaCredentials], StravaCredentials]


def refresh_credentials(
    credentials: StravaCredentials,
    client_id: str,
    client_secret: str,
    http_client: httpx.Client | None = None,
) -> StravaCredentials:
    """Exchange the refresh token for a new access token."""
    if not credentials.refresh_token:
        raise AuthenticationError("No refresh token available")

    client = http_client or httpx.Client(timeout=FETCH_TIMEOUT_SECONDS)
    try:
        response = client.post(TOKEN_URL, json={
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": credentials.refresh_token,
            "grant_type": "refresh_token",
        })
    except httpx.HTTPError as e:
        raise ProviderError(f"Token refresh failed: {e}") from e
    finally:
        if http_client is None:
            client.close()

    if response.status_code != 200:
        raise AuthenticationError(f"Token refresh failed: HTTP {response.status_code}")

    data = response.json()
    return StravaCredentials(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token", credentials.refresh_token),
        expires_at=datetime.fromtimestamp(data["expires_at"], tz=timezone.utc),
    )


class StravaClient:
    """Synchronous activity fetcher."""

    def __init__(
        self,
        credentials: StravaCredentials,
        refresher: Refresher | None = None,
        http_client: httpx.Client | None = None,
        base_url: str = API_BASE_URL,
    ):
        self.credentials = credentials
        self._refresher = refresher
        self._http = http_client or httpx.Client(timeout=FETCH_TIMEOUT_SECONDS)
        self._owns_http = http_client is None
        self.base_url = base_url

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "StravaClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _refresh(self) -> None:
        if self._refresher is None:
            raise AuthenticationError("Token expired or invalid. Please reconnect.")
        self.credentials = self._refresher(self.credentials)
        logger.info("Provider access token refreshed")

    def _get(self, endpoint: str, params: dict, retry_on_401: bool = True):
        if self.credentials.is_expiring() and self._refresher is not None:
            self._refresh()

        try:
            response = self._http.get(
                f"{self.base_url}{endpoint}",
                params=params,
                headers={"Authorization": f"Bearer {self.credentials.access_token}"},
            )
        except httpx.TimeoutException as e:
            logger.warning("Provider request to %s timed out", endpoint)
            raise ProviderError(f"Provider request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.warning("Provider transport error on %s: %s", endpoint, e)
            raise ProviderError(f"Provider transport error: {e}") from e

        if response.status_code == 200:
            return response.json()

        if response.status_code == 401:
            if retry_on_401:
                self._refresh()
                return self._get(endpoint, params, retry_on_401=False)
            raise AuthenticationError("Token rejected after refresh")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                "Provider rate limit exceeded",
                int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        logger.warning("Provider returned HTTP %d for %s", response.status_code, endpoint)
        raise ProviderError(
            f"Provider API error: HTTP {response.status_code}",
            retryable=response.status_code >= 500,
        )

    def fetch_activities(
        self,
        days: int = DEFAULT_DAYS,
        per_page: int = DEFAULT_PER_PAGE,
        page: int = 1,
        now: datetime | None = None,
    ) -> list[ExternalActivity]:
        """Activities started within the last `days` days."""
        now = now or datetime.now(timezone.utc)
        after = int((now - timedelta(days=days)).timestamp())
        payload = self._get(
            "/athlete/activities",
            {"after": after, "per_page": min(per_page, 200), "page": page},
        )
        if not isinstance(payload, list):
            raise ProviderError("Unexpected activities payload", retryable=False)

        activities = []
        for record in payload:
            activity = ExternalActivity.from_api(record) if isinstance(record, dict) else None
            if activity is None:
                logger.warning("Skipping malformed provider activity: %.120s", record)
                continue
            activities.append(activity)
        return activities
