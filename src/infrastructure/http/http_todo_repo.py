"""httpx implementation of the Todo repository."""

from datetime import date
from typing import Any

import httpx
import pydantic
import structlog

from core.config import settings
from core.exceptions import AppException, AuthenticationError, ConflictError, NetworkError
from domain.entities.todo import Todo
from infrastructure.http.schemas import (
    CreateTodoRequest,
    MessageResponse,
    TodoPayload,
    UpdateAssignedDateRequest,
    UpdatePositionRequest,
    UpdateTextRequest,
    VirtualTodoRequest,
)

logger = structlog.get_logger()


class HttpTodoRepository:
    """REST client implementation of ITodoRepository.

    Transport failures, timeouts and 5xx responses surface as
    ``NetworkError``; 401 as ``AuthenticationError``; any other 4xx as
    ``ConflictError`` carrying the server's message.
    """

    def __init__(
        self,
        base_url: str = settings.api_base_url,
        headers: dict[str, str] | None = None,
        timeout: float = settings.request_timeout_seconds,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers=settings.auth_headers if headers is None else headers,
            timeout=timeout,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpTodoRepository":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # --- Reads ---

    async def get_for_date(self, day: date) -> list[Todo]:
        response = await self._request("GET", "/todos", params={"date": day.isoformat()})
        return self._todos(response)

    async def get_for_range(self, start: date, end: date) -> list[Todo]:
        response = await self._request(
            "GET",
            "/todos",
            params={"startDate": start.isoformat(), "endDate": end.isoformat()},
        )
        return self._todos(response)

    # --- Real items ---

    async def create(self, text: str, assigned_date: date) -> Todo:
        body = CreateTodoRequest(text=text, assigned_date=assigned_date)
        return self._todo(await self._request("POST", "/todos", json=self._dump(body)))

    async def update_text(self, todo_id: int, text: str) -> Todo:
        body = UpdateTextRequest(text=text)
        return self._todo(await self._request("PUT", f"/todos/{todo_id}/text", json=self._dump(body)))

    async def update_position(self, todo_id: int, position: int) -> Todo:
        body = UpdatePositionRequest(position=position)
        return self._todo(
            await self._request("PUT", f"/todos/{todo_id}/position", json=self._dump(body))
        )

    async def update_assigned_date(self, todo_id: int, to_date: date) -> Todo:
        body = UpdateAssignedDateRequest(to_date=to_date)
        return self._todo(
            await self._request("PUT", f"/todos/{todo_id}/assigned-date", json=self._dump(body))
        )

    async def complete(self, todo_id: int) -> Todo:
        return self._todo(await self._request("POST", f"/todos/{todo_id}/complete"))

    async def uncomplete(self, todo_id: int) -> Todo:
        return self._todo(await self._request("POST", f"/todos/{todo_id}/uncomplete"))

    async def delete(self, todo_id: int, delete_all_future: bool = False) -> None:
        await self._request(
            "DELETE",
            f"/todos/{todo_id}",
            params={"deleteAllFuture": _flag(delete_all_future)},
        )

    # --- Virtual items ---

    async def complete_virtual(self, recurring_todo_id: int, instance_date: date) -> Todo:
        body = _virtual_body(recurring_todo_id, instance_date)
        return self._todo(await self._request("POST", "/todos/virtual/complete", json=body))

    async def update_virtual_text(
        self, recurring_todo_id: int, instance_date: date, text: str
    ) -> Todo:
        body = _virtual_body(recurring_todo_id, instance_date)
        response = await self._request(
            "POST", "/todos/virtual/update-text", params={"text": text}, json=body
        )
        return self._todo(response)

    async def update_virtual_position(
        self, recurring_todo_id: int, instance_date: date, position: int
    ) -> Todo:
        body = _virtual_body(recurring_todo_id, instance_date)
        response = await self._request(
            "POST", "/todos/virtual/update-position", params={"position": position}, json=body
        )
        return self._todo(response)

    async def update_virtual_assigned_date(
        self, recurring_todo_id: int, instance_date: date, to_date: date
    ) -> Todo:
        body = _virtual_body(recurring_todo_id, instance_date)
        response = await self._request(
            "POST",
            "/todos/virtual/update-assigned-date",
            params={"toDate": to_date.isoformat()},
            json=body,
        )
        return self._todo(response)

    async def delete_virtual(
        self, recurring_todo_id: int, instance_date: date, delete_all_future: bool = False
    ) -> None:
        await self._request(
            "DELETE",
            "/todos/virtual",
            params={
                "recurringTodoId": recurring_todo_id,
                "instanceDate": instance_date.isoformat(),
                "deleteAllFuture": _flag(delete_all_future),
            },
        )

    # --- Helpers ---

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as exc:
            logger.warning("todo_service_timeout", method=method, path=path)
            raise NetworkError("The Todo Service did not respond in time.") from exc
        except httpx.TransportError as exc:
            logger.warning("todo_service_unreachable", method=method, path=path, error=str(exc))
            raise NetworkError() from exc

        if response.is_success:
            return response

        message = _error_message(response)
        logger.warning(
            "todo_service_error",
            method=method,
            path=path,
            status_code=response.status_code,
            message=message,
        )
        if response.status_code == 401:
            raise AuthenticationError(message or "Authentication required")
        if response.status_code >= 500:
            raise NetworkError(message or "Server error", status_code=response.status_code)
        raise ConflictError(
            message or "The server rejected the change.", status_code=response.status_code
        )

    @staticmethod
    def _dump(body: pydantic.BaseModel) -> dict[str, Any]:
        return body.model_dump(mode="json", by_alias=True)

    @staticmethod
    def _todo(response: httpx.Response) -> Todo:
        try:
            return TodoPayload.model_validate(response.json()).to_entity()
        except (ValueError, pydantic.ValidationError) as exc:
            raise _malformed(response) from exc

    @staticmethod
    def _todos(response: httpx.Response) -> list[Todo]:
        try:
            payload = response.json()
            if not isinstance(payload, list):
                raise ValueError("expected a list of todos")
            return [TodoPayload.model_validate(item).to_entity() for item in payload]
        except (ValueError, pydantic.ValidationError) as exc:
            raise _malformed(response) from exc


def _virtual_body(recurring_todo_id: int, instance_date: date) -> dict[str, Any]:
    body = VirtualTodoRequest(recurring_todo_id=recurring_todo_id, instance_date=instance_date)
    return body.model_dump(mode="json", by_alias=True)


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _error_message(response: httpx.Response) -> str:
    try:
        return MessageResponse.model_validate(response.json()).message
    except (ValueError, pydantic.ValidationError):
        return response.text.strip()


def _malformed(response: httpx.Response) -> AppException:
    logger.error(
        "todo_service_malformed_response",
        path=response.request.url.path,
        status_code=response.status_code,
    )
    return NetworkError("Unexpected response from the Todo Service.", status_code=response.status_code)
