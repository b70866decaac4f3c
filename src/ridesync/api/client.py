"""HTTP client for the remote trip API."""

import logging
from datetime import datetime
from typing import Any

import httpx
from opentelemetry import trace

from ..core.exceptions import (
    AuthenticationError,
    CoordinationError,
    NetworkError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from ..core.retry import RetryConfig, with_retry
from ..location.models import LocationUpdate
from ..settings import ApiSettings
from ..trip import Coordinates, Customer, Place, TripRequest, TripStatus

logger = logging.getLogger(__name__)

_tracer = trace.get_tracer(__name__)


def auth_headers(token: str | None) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if token:
        token = token.strip()
        headers["Authorization"] = token if token.startswith("Bearer ") else f"Bearer {token}"
    return headers


def _timestamp_ms(value: Any) -> int | None:
    if isinstance(value, int | float):
        return int(value)
    if not value:
        return None
    try:
        return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        return None


def _coordinates(value: Any) -> Coordinates:
    if isinstance(value, dict) and "latitude" in value and "longitude" in value:
        return Coordinates(latitude=value["latitude"], longitude=value["longitude"])
    return Coordinates(latitude=0, longitude=0)


def parse_api_trip(
    data: dict[str, Any],
    fallback_timestamp: int,
    customer_name: str | None = None,
    pickup: Coordinates | None = None,
    destination: Coordinates | None = None,
) -> TripRequest:
    """Map a trip API record onto the local request model.

    The API does not return coordinates for every endpoint; missing ones
    fall back to the caller's or to (0, 0).
    """
    client = data.get("client") if isinstance(data.get("client"), dict) else {}
    distance = data.get("distance_km")
    return TripRequest(
        id=str(data["id"]),
        customer=Customer(
            id=data.get("user_id", 0),
            name=customer_name or client.get("name") or data.get("user_name") or "Customer",
        ),
        pickup=Place(
            name=data.get("from_address", ""),
            coordinates=pickup or _coordinates(data.get("pickup_coordinates")),
        ),
        destination=Place(
            name=data.get("to_address", ""),
            coordinates=destination or _coordinates(data.get("destination_coordinates")),
        ),
        fare=float(data.get("price") or 0),
        timestamp=_timestamp_ms(data.get("created_at")) or fallback_timestamp,
        status=TripStatus.from_api(data.get("status") or "pending"),
        driver_id=data.get("driver_id"),
        distance_km=float(distance) if distance is not None else None,
        tariff=data.get("tariff"),
    )


class TripApiClient:
    """Thin async wrapper over the trip REST API.

    Transport and HTTP failures surface as ``ridesync.core`` exceptions:
    timeouts and 5xx are transient and retried, 4xx are permanent.
    """

    def __init__(self, settings: ApiSettings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
        )
        self._retry = RetryConfig(
            max_attempts=settings.max_retries,
            base_delay=settings.retry_base_delay,
        )
        self._accept_route: tuple[str, str] | None = None

    @property
    def accept_route(self) -> tuple[str, str] | None:
        """(method, endpoint) that last accepted a trip, if any."""
        return self._accept_route

    async def close(self) -> None:
        await self._client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        token: str | None,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        with _tracer.start_as_current_span("trip_api.request") as span:
            span.set_attribute("http.method", method)
            span.set_attribute("http.route", path)
            try:
                response = await self._client.request(
                    method, path, params=params, json=json, headers=auth_headers(token)
                )
            except httpx.TimeoutException as e:
                span.record_exception(e)
                raise NetworkError(f"{method} {path} timed out after {self.settings.timeout_seconds}s") from e
            except httpx.TransportError as e:
                span.record_exception(e)
                raise NetworkError(f"{method} {path} failed: {e}") from e

            span.set_attribute("http.status_code", response.status_code)

        status = response.status_code
        details = {"status": status, "path": path, "body": response.text[:200]}
        if status in (401, 403):
            raise AuthenticationError(f"{method} {path} unauthorized: {status}", details)
        if status == 404:
            raise NotFoundError(f"{method} {path} not found", details)
        if status >= 500:
            raise ServiceUnavailableError(f"{method} {path} server error: {status}", details)
        if status >= 400:
            raise ValidationError(f"{method} {path} rejected: {status}", details)
        return response

    async def _call(
        self,
        method: str,
        path: str,
        token: str | None,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        response = await with_retry(
            lambda: self._send(method, path, token, params=params, json=json),
            config=self._retry,
            operation_name=f"{method} {path}",
        )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ValidationError(f"{method} {path} returned invalid JSON") from e

    async def create_trip(self, body: dict[str, Any], token: str | None) -> dict[str, Any]:
        data = await self._call("POST", "/trips", token, json=body)
        if not isinstance(data, dict) or not isinstance(data.get("trip"), dict):
            raise ValidationError("Create trip response has no trip", {"response": data})
        return data["trip"]

    async def get_available_trips(self, token: str) -> list[dict[str, Any]]:
        data = await self._call("GET", "/trips/available", token)
        if not isinstance(data, list):
            raise ValidationError("Available trips response is not a list", {"response": data})
        return data

    async def get_active_trip(self, token: str) -> dict[str, Any] | None:
        data = await self._call("GET", "/trips/active", token)
        return data if isinstance(data, dict) and data.get("id") is not None else None

    async def update_trip_status(self, trip_id: str, api_status: str, token: str) -> None:
        await self._call("GET", "/trips/status", token, params={"trip_id": trip_id, "status": api_status})

    async def cancel_trip(self, trip_id: str, token: str) -> None:
        await self._call("GET", "/trips/cancel", token, params={"trip_id": trip_id})

    async def get_trip_history(self, token: str) -> list[dict[str, Any]]:
        data = await self._call("GET", "/trips/history", token)
        if isinstance(data, dict) and isinstance(data.get("trips"), list):
            return data["trips"]
        if isinstance(data, list):
            return data
        logger.warning(f"Unexpected trip history format: {type(data).__name__}")
        return []

    async def send_trip_to_history(self, trip_id: str, token: str) -> bool:
        """Archive a trip, trying GET with a query string first and POST second."""
        try:
            await self._send("GET", "/trips/history", token, params={"trip_id": trip_id})
            return True
        except CoordinationError as e:
            logger.info(f"Failed to send trip {trip_id} to history via GET: {e}")
        try:
            await self._send("POST", "/trips/history", token, json={"trip_id": trip_id})
            return True
        except CoordinationError as e:
            logger.info(f"Failed to send trip {trip_id} to history via POST: {e}")
        return False

    async def check_auth(self, token: str) -> dict[str, Any]:
        data = await self._call("GET", "/auth/check", token)
        return data if isinstance(data, dict) else {}

    async def update_location(self, update: LocationUpdate, token: str) -> None:
        await self._send("GET", "/location/update", token, params=update.to_query_params())

    async def accept_trip(self, trip_id: str, acceptance: dict[str, str], token: str) -> bool:
        """Tell the server a driver took the trip.

        Deployments disagree on the accept endpoint, so the configured
        candidates are probed with GET (query string) then POST (JSON body)
        until one answers 2xx. The winner is pinned and tried first next time.
        """
        if self._accept_route is not None:
            method, endpoint = self._accept_route
            if await self._try_accept(method, endpoint, trip_id, acceptance, token):
                return True
            logger.warning(f"Pinned accept route {method} {endpoint} failed, probing again")
            self._accept_route = None

        for endpoint in self.settings.accept_endpoints:
            for method in ("GET", "POST"):
                if await self._try_accept(method, endpoint, trip_id, acceptance, token):
                    self._accept_route = (method, endpoint)
                    logger.info(f"Trip accept route pinned to {method} {endpoint}")
                    return True

        logger.warning("All accept endpoints failed, proceeding with local data only")
        return False

    async def _try_accept(
        self,
        method: str,
        endpoint: str,
        trip_id: str,
        acceptance: dict[str, str],
        token: str,
    ) -> bool:
        path = endpoint.format(trip_id=trip_id)
        try:
            if method == "GET":
                await self._send("GET", path, token, params=acceptance)
            else:
                await self._send("POST", path, token, json=acceptance)
            return True
        except CoordinationError as e:
            logger.debug(f"Accept via {method} {path} failed: {e}")
            return False
