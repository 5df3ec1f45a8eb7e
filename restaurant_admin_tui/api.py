"""HTTP clients for the restaurant admin backend.

All calls go through :class:`ApiClient`, which attaches the session cookie,
applies the request timeout and turns every failure into an
:class:`~restaurant_admin_tui.errors.AdminError` subclass with a message
that can be shown to the operator as-is.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import httpx

from .errors import NotAuthorizedError, RecordNotFoundError, TransportError
from .sales import (
    SalesReport,
    Shift,
    dashboard_windows,
    report_from_payload,
    shifts_by_store,
)

logger = logging.getLogger(__name__)


class ApiClient:
    """Session-aware JSON client for ``/api/...`` routes.

    Uses one pooled ``httpx.AsyncClient``. Pass ``http_client`` to supply
    your own (tests use one built on ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        session_token: Optional[str] = None,
        session_cookie: str = "admin_session",
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self.session_token = session_token
        self.session_cookie = session_cookie
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.session_token:
            headers["Cookie"] = f"{self.session_cookie}={self.session_token}"
        return headers

    async def send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request and return the raw response.

        Raises:
            TransportError: If the server cannot be reached or times out
        """
        url = f"{self._base_url}{path}"
        try:
            return await self._client().request(
                method,
                url,
                headers=self._get_headers(),
                timeout=self._timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out", method, path)
            raise TransportError("The server took too long to respond. Try again.") from e
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransportError(f"Could not reach the server: {e}") from e

    async def request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        """Send a request and return its decoded JSON body."""
        response = await self.send(method, path, **kwargs)
        return self.parse(response)

    @staticmethod
    def error_message(response: httpx.Response) -> Optional[str]:
        """The ``error`` field of a JSON error body, if there is one."""
        try:
            payload = response.json()
        except ValueError:
            return None
        if isinstance(payload, dict) and payload.get("error"):
            return str(payload["error"])
        return None

    @staticmethod
    def parse(response: httpx.Response) -> Dict[str, Any]:
        """Decode a JSON body, raising for HTTP errors and ``{ok: false}``.

        Raises:
            NotAuthorizedError: On HTTP 401
            TransportError: On any other non-success response
        """
        if response.status_code == 401:
            raise NotAuthorizedError()

        try:
            payload = response.json()
        except ValueError:
            payload = None

        body = payload if isinstance(payload, dict) else {}
        if response.is_error or body.get("ok") is False:
            message = body.get("error") or f"Request failed ({response.status_code})"
            raise TransportError(str(message), status_code=response.status_code)
        if payload is None:
            raise TransportError("The server sent an unexpected response.", response.status_code)
        return body

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


class RestCollection:
    """``list``/``create``/``update``/``delete`` over one REST route."""

    def __init__(self, api: ApiClient, path: str, list_key: str = "items", item_key: str = "item"):
        self.api = api
        self.path = path
        self.list_key = list_key
        self.item_key = item_key

    async def list(self) -> List[Dict[str, Any]]:
        payload = await self.api.request("GET", self.path)
        return list(payload.get(self.list_key) or [])

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        payload = await self.api.request("POST", self.path, json=fields)
        return self._item(payload)

    async def update(self, record_id: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
        try:
            payload = await self.api.request("PUT", f"{self.path}/{record_id}", json=fields)
        except TransportError as e:
            raise self._not_found(e, record_id)
        return self._item(payload)

    async def delete(self, record_id: Any) -> None:
        try:
            await self.api.request("DELETE", f"{self.path}/{record_id}")
        except TransportError as e:
            raise self._not_found(e, record_id)

    def _item(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        item = payload.get(self.item_key)
        if not isinstance(item, dict):
            raise TransportError("The server did not return the saved record.")
        return item

    @staticmethod
    def _not_found(error: TransportError, record_id: Any) -> Exception:
        if error.status_code == 404:
            return RecordNotFoundError(record_id)
        return error


class MenuCollection(RestCollection):
    def __init__(self, api: ApiClient):
        super().__init__(api, "/api/admin/menu")

    async def delete_type(self, tipo: int) -> None:
        """Delete every menu item of one category."""
        await self.api.request("DELETE", f"{self.path}/type/{int(tipo)}")


class ListCollection:
    """A landing list the backend only accepts as a whole.

    ``PUT`` upserts every item in ``{items: [...]}`` and answers with the
    stored rows. Saving one record therefore sends the last known list with
    that record replaced or appended. The backend has no route that removes
    an item; clearing ``is_active`` hides it from the site.
    """

    def __init__(self, api: ApiClient, path: str):
        self.api = api
        self.path = path
        self._items: Optional[List[Dict[str, Any]]] = None

    async def list(self) -> List[Dict[str, Any]]:
        payload = await self.api.request("GET", self.path)
        self._items = [dict(item) for item in payload.get("items") or []]
        return [dict(item) for item in self._items]

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        items = await self._known_items()
        known_ids = {str(item.get("id")) for item in items}
        stored = await self._put(items + [dict(fields)])
        for item in stored:
            if str(item.get("id")) not in known_ids:
                return item
        raise TransportError("The server did not return the saved record.")

    async def update(self, record_id: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
        items = await self._known_items()
        position = self._position(items, record_id)
        if position is None:
            raise RecordNotFoundError(record_id)
        items[position] = dict(fields, id=items[position]["id"])
        stored = await self._put(items)
        position = self._position(stored, record_id)
        if position is None:
            raise TransportError("The server did not return the saved record.")
        return stored[position]

    async def delete(self, record_id: Any) -> None:
        raise TransportError("The server cannot remove this item. Clear Active to hide it instead.")

    async def _known_items(self) -> List[Dict[str, Any]]:
        if self._items is None:
            await self.list()
        return [dict(item) for item in self._items]

    async def _put(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        payload = await self.api.request("PUT", self.path, json={"items": items})
        stored = [dict(item) for item in payload.get("items") or []]
        # the answer lists the upserted rows; keep the cache in list order
        merged = list(self._items or [])
        for item in stored:
            position = self._position(merged, item.get("id"))
            if position is None:
                merged.append(item)
            else:
                merged[position] = item
        self._items = merged
        return stored

    @staticmethod
    def _position(items: List[Dict[str, Any]], record_id: Any) -> Optional[int]:
        for position, item in enumerate(items):
            if item.get("id") is not None and str(item.get("id")) == str(record_id):
                return position
        return None


class AboutCollection:
    """The single "about" block of the landing page.

    The backend returns a default block with ``id: null`` until the first
    save, and upserts on PUT, so ``create`` and ``update`` share a route.
    """

    path = "/api/admin/landing/about"

    def __init__(self, api: ApiClient):
        self.api = api

    async def list(self) -> List[Dict[str, Any]]:
        payload = await self.api.request("GET", self.path)
        about = payload.get("about")
        return [about] if isinstance(about, dict) else []

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._put(fields)

    async def update(self, record_id: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._put(dict(fields, id=record_id))

    async def delete(self, record_id: Any) -> None:
        raise TransportError("The about block cannot be deleted.")

    async def _put(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        payload = await self.api.request("PUT", self.path, json={"about": fields})
        about = payload.get("about")
        if not isinstance(about, dict):
            raise TransportError("The server did not return the saved record.")
        return about


class StaffCollection(RestCollection):
    """Kitchen staff accounts."""

    def __init__(self, api: ApiClient):
        super().__init__(api, "/api/admin/usercocina", list_key="users", item_key="user")

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create an account.

        When no password is sent the backend generates one and returns it
        once; it comes back under ``passwordPlain`` in the returned record.
        """
        payload = await self.api.request("POST", self.path, json=fields)
        record = dict(self._item(payload))
        if payload.get("passwordPlain"):
            record["passwordPlain"] = payload["passwordPlain"]
        return record

    async def reset_password(self, record_id: Any) -> str:
        try:
            payload = await self.api.request("POST", f"{self.path}/{record_id}/reset-password")
        except TransportError as e:
            raise self._not_found(e, record_id)
        password = payload.get("passwordPlain")
        if not password:
            raise TransportError("The server did not return a new password.")
        return str(password)

    async def store_names(self) -> List[str]:
        payload = await self.api.request("GET", "/api/admin/puntosventa")
        return [str(name) for name in payload.get("barrios") or [] if name]


class SalesClient:
    """Sales reports from the location routes, plus open shifts."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def summary(self, first: date, last: date) -> SalesReport:
        """Totals across every store for an inclusive day range."""
        payload = await self.api.request(
            "GET", "/api/admin/pv/sales/summary", params=self._days(first, last)
        )
        return report_from_payload(payload)

    async def store_sales(self, pv_id: Any, first: date, last: date) -> SalesReport:
        """Totals and per-product rows for one store over an inclusive day range."""
        payload = await self.api.request(
            "GET", f"/api/admin/pv/{pv_id}/sales", params=self._days(first, last)
        )
        return report_from_payload(payload)

    async def shift_sales(self, pv_id: Any, start: Optional[datetime], end: datetime) -> SalesReport:
        """One store's sales between two timestamps, ``[start, end)``."""
        params = {"to_ts": end.astimezone().isoformat()}
        if start is not None:
            params["from_ts"] = start.astimezone().isoformat()
        payload = await self.api.request("GET", f"/api/admin/pv/{pv_id}/sales-ts", params=params)
        return report_from_payload(payload)

    async def dashboard(self, pv_id: Any = None, today: Optional[date] = None) -> Dict[str, SalesReport]:
        """Reports for today, the last 7 and the last 30 days.

        Without a store id the totals cover every store.
        """
        reports = {}
        for label, first, last in dashboard_windows(today):
            if pv_id is None:
                reports[label] = await self.summary(first, last)
            else:
                reports[label] = await self.store_sales(pv_id, first, last)
        return reports

    async def shift_report(self, shift: Shift, now: Optional[datetime] = None) -> SalesReport:
        start, end = shift.window(now)
        return await self.shift_sales(shift.store_id, start, end)

    async def active_shifts(self) -> Dict[str, Shift]:
        payload = await self.api.request("GET", "/api/admin/shifts/active")
        return shifts_by_store(payload.get("items") or [])

    @staticmethod
    def _days(first: date, last: date) -> Dict[str, str]:
        return {"from": first.isoformat(), "to": last.isoformat()}


class AuthClient:
    """Login, current-session and logout calls."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Sign in and keep the returned session cookie on the client.

        Raises:
            TransportError: If the credentials are rejected
        """
        response = await self.api.send(
            "POST",
            "/api/auth/login",
            json={"email": email.strip(), "password": password},
        )
        if response.status_code == 401:
            message = ApiClient.error_message(response) or "Invalid credentials"
            raise TransportError(message, status_code=401)
        payload = ApiClient.parse(response)
        token = response.cookies.get(self.api.session_cookie)
        if not token:
            raise TransportError("The server did not start a session.")
        self.api.session_token = token
        logger.info("Signed in as %s", email.strip())
        return payload.get("admin") or {}

    async def me(self) -> Dict[str, Any]:
        payload = await self.api.request("GET", "/api/auth/me")
        return payload.get("admin") or {}

    async def logout(self) -> None:
        try:
            await self.api.request("POST", "/api/auth/logout")
        finally:
            self.api.session_token = None
