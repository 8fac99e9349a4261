"""
HTTP transport from a device to the journal API.

Error responses are mapped back onto the `core.errors` types the server raised,
so callers handle one taxonomy whether the failure happened locally or remotely.
A network-level failure, or a 502/503/504 from the API or a gateway in front of
it, is reported as ConnectionUnavailable.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from core.config import settings
from core.errors import (
    ERRORS_BY_CODE,
    ConnectionUnavailable,
    InvalidSession,
    RemoteRequestError,
)
from schemas import (
    AuthResponse,
    DataExport,
    ImportBundle,
    ImportSummary,
    RecordKind,
    ReportSummary,
    User,
    parse_record,
)

logger = logging.getLogger(__name__)

KIND_PATHS: Dict[RecordKind, str] = {
    RecordKind.ASSESSMENT: "/v1/assessments",
    RecordKind.FATIGUE_SCALE: "/v1/fatigue-scales",
    RecordKind.EXERCISE_SESSION: "/v1/exercise-sessions",
}

# Bad gateway, unavailable, gateway timeout: the backend is not reachable right now
GATEWAY_STATUSES = frozenset({502, 503, 504})


def _record_payload(kind: RecordKind, record: BaseModel) -> Dict[str, Any]:
    # Assessments are merged server-side, so only send what the caller set
    if kind is RecordKind.ASSESSMENT:
        return record.model_dump(mode="json", exclude_unset=True)
    return record.model_dump(mode="json")


class HealthApiClient:
    """Async client for the journal API, bound to at most one session token."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url or settings.API_BASE_URL
        self.session_token: Optional[str] = None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=settings.API_TIMEOUT_S if timeout is None else timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        token = token or self.session_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        **kwargs,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method, path, headers=self._headers(token), **kwargs
            )
        except httpx.TransportError as e:
            raise ConnectionUnavailable(f"API unreachable: {e}") from e

        if response.is_success:
            return response
        raise self._error_for(response)

    @staticmethod
    def _error_for(response: httpx.Response) -> Exception:
        try:
            body = response.json()
        except ValueError:
            body = None

        detail = None
        error_code = None
        if isinstance(body, dict):
            detail = body.get("detail")
            error_code = body.get("error_code")
            if not isinstance(detail, str):
                # Request validation errors carry a list of problems
                detail = str(detail) if detail is not None else None

        error_cls = ERRORS_BY_CODE.get(error_code)
        if error_cls is not None:
            return error_cls(detail)
        if response.status_code == 401:
            return InvalidSession(detail)
        if response.status_code in GATEWAY_STATUSES:
            return ConnectionUnavailable(
                detail or f"API unavailable (status {response.status_code})"
            )
        return RemoteRequestError(response.status_code, detail)

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    async def register(self, username: str, password: str, display_name: str) -> AuthResponse:
        response = await self._request(
            "POST",
            "/v1/auth/register",
            json={"username": username, "password": password, "display_name": display_name},
        )
        auth = AuthResponse.model_validate(response.json())
        self.session_token = auth.session_token
        return auth

    async def login(self, username: str, password: str) -> AuthResponse:
        response = await self._request(
            "POST",
            "/v1/auth/login",
            json={"username": username, "password": password},
        )
        auth = AuthResponse.model_validate(response.json())
        self.session_token = auth.session_token
        return auth

    async def verify(self, token: Optional[str] = None) -> User:
        if not (token or self.session_token):
            raise InvalidSession()
        response = await self._request("GET", "/v1/auth/me", token=token)
        return User.model_validate(response.json())

    async def logout(self, token: Optional[str] = None) -> None:
        token = token or self.session_token
        if token:
            await self._request("POST", "/v1/auth/logout", token=token)
        if token == self.session_token:
            self.session_token = None

    async def health_check(self) -> bool:
        """True only when the API answers and reports its store as healthy."""
        try:
            response = await self._client.get("/health")
        except httpx.TransportError as e:
            logger.warning(f"Health check failed: {e}")
            return False
        try:
            return bool(response.json().get("healthy", False))
        except (ValueError, AttributeError):
            return False

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    async def save_record(self, kind: RecordKind, record: BaseModel) -> BaseModel:
        """Persist a record; returns what the server stored (merged for assessments)."""
        response = await self._request("POST", KIND_PATHS[kind], json=_record_payload(kind, record))
        return parse_record(kind, response.json())

    async def get_record(self, kind: RecordKind, key: str) -> Optional[BaseModel]:
        response = await self._request("GET", f"{KIND_PATHS[kind]}/{key}")
        body = response.json()
        return parse_record(kind, body) if body is not None else None

    async def list_records(self, kind: RecordKind, limit: Optional[int] = None) -> List[BaseModel]:
        params = {"limit": limit} if limit is not None and kind is RecordKind.ASSESSMENT else None
        response = await self._request("GET", KIND_PATHS[kind], params=params)
        records = [parse_record(kind, item) for item in response.json()]
        return records[:limit] if limit is not None else records

    async def delete_record(self, kind: RecordKind, key: str) -> None:
        await self._request("DELETE", f"{KIND_PATHS[kind]}/{key}")

    # -------------------------------------------------------------------------
    # Bulk / reports
    # -------------------------------------------------------------------------

    async def export(self) -> DataExport:
        response = await self._request("GET", "/v1/export")
        return DataExport.model_validate(response.json())

    async def import_bundle(self, bundle: ImportBundle) -> ImportSummary:
        response = await self._request(
            "POST", "/v1/import", json=bundle.model_dump(mode="json")
        )
        return ImportSummary.model_validate(response.json())

    async def clear(self) -> int:
        response = await self._request("DELETE", "/v1/records")
        return int(response.json().get("removed", 0))

    async def report_summary(self) -> ReportSummary:
        response = await self._request("GET", "/v1/reports/summary")
        return ReportSummary.model_validate(response.json())
