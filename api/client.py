"""
api/client.py -- Authenticated HTTP calls to the legacy REST backend.

Every call attaches HTTP Basic credentials obtained from the session
coordinator. A 401 on the first attempt asks the coordinator to refresh;
the request is retried exactly once when the refresh succeeded. Any other
failure propagates:

  transport failure  -> NetworkError
  status >= 400      -> ServerError(status, body)   (including a 401 on the retry)
  refresh not done   -> AuthExpiredError

Per-call progress (sending, auth_retry, success, fail) is logged at DEBUG.
Credentials are never logged.

Layer rule: talks to the coordinator only through credentials() and
refresh(); never reads the credential cache directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from auth.session import RefreshOutcome, SessionCoordinator
from core.config import Settings, get_settings
from core.errors import AuthExpiredError, NetworkError, ServerError

logger = logging.getLogger("reliefauth.client")

# Legacy backend endpoints, relative to backend_base_url.
HEALTH = "/health"
HEALTH_DATABASE = "/health/database"
USERS = "/users"
EMERGENCY = "/emergency"
VOLUNTEERS = "/volunteers"
VOLUNTEER_AVAILABILITY = "/volunteers/availability"
VOLUNTEER_ASSIGNMENTS = "/volunteers/assignments"
FILES_UPLOAD = "/files/upload"
FILES_DOWNLOAD = "/files/download"


@dataclass(frozen=True)
class ApiRequest:
    method: str
    path: str
    json: Optional[Any] = None
    params: Optional[dict[str, Any]] = None
    headers: dict[str, str] = field(default_factory=dict)


class RequestExecutor:
    def __init__(
        self,
        coordinator: SessionCoordinator,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        cfg = settings or get_settings()
        self._coordinator = coordinator
        self._base_url = (base_url or cfg.backend_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else cfg.request_timeout
        if session is None:
            session = requests.Session()
            session.max_redirects = cfg.max_redirects
        self._session = session

    def execute(self, request: ApiRequest) -> requests.Response:
        """Send request with the session's credentials, refreshing once on 401."""
        logger.debug("%s %s: sending", request.method, request.path)
        resp = self._send(request)
        if resp.status_code == 401:
            logger.debug("%s %s: auth_retry", request.method, request.path)
            outcome = self._coordinator.refresh()
            if outcome is not RefreshOutcome.REFRESHED:
                logger.debug("%s %s: fail (refresh %s)", request.method, request.path, outcome.value)
                raise AuthExpiredError()
            logger.debug("%s %s: sending (retry)", request.method, request.path)
            resp = self._send(request)
        return self._check(request, resp)

    def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return self.execute(ApiRequest("GET", path, params=params)).json()

    def post(self, path: str, data: Optional[Any] = None) -> Any:
        return _body(self.execute(ApiRequest("POST", path, json=data)))

    def put(self, path: str, data: Optional[Any] = None) -> Any:
        return _body(self.execute(ApiRequest("PUT", path, json=data)))

    def delete(self, path: str) -> Any:
        return _body(self.execute(ApiRequest("DELETE", path)))

    # ------------------------------------------------------------------
    # Unauthenticated health probes
    # ------------------------------------------------------------------

    def check_health(self) -> dict[str, Any]:
        return self._probe(HEALTH)

    def check_database_health(self) -> dict[str, Any]:
        return self._probe(HEALTH_DATABASE)

    def _probe(self, path: str) -> dict[str, Any]:
        request = ApiRequest("GET", path)
        try:
            resp = self._session.get(self._url(path), timeout=self._timeout)
        except requests.RequestException as exc:
            logger.warning("Health check %s failed: %s", path, exc)
            raise NetworkError(f"Backend unreachable: {exc}") from exc
        return self._check(request, resp).json()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _send(self, request: ApiRequest) -> requests.Response:
        credentials = self._coordinator.credentials()
        try:
            return self._session.request(
                request.method,
                self._url(request.path),
                json=request.json,
                params=request.params,
                headers={"Accept": "application/json", **request.headers},
                auth=credentials.as_auth(),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.debug("%s %s: fail (transport)", request.method, request.path)
            raise NetworkError(f"Backend unreachable: {exc}") from exc

    def _check(self, request: ApiRequest, resp: requests.Response) -> requests.Response:
        if resp.status_code >= 400:
            logger.debug("%s %s: fail (HTTP %d)", request.method, request.path, resp.status_code)
            raise ServerError(resp.status_code, resp.text)
        logger.debug("%s %s: success (HTTP %d)", request.method, request.path, resp.status_code)
        return resp


def _body(resp: requests.Response) -> Any:
    """JSON body, or None for an empty response (e.g. 204 from DELETE)."""
    if not resp.content:
        return None
    return resp.json()
