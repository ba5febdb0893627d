"""HTTP client for the remote todo API.

This module provides:
- TodoClient: HTTP client implementing the remote side of the sync queue
- APIError hierarchy: NetworkError (unreachable, timeout), RemoteError (non-2xx)
- TodoRequest / RemoteTodo: wire shapes of the todo endpoints
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx
import pydantic
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from todosync.core.config import ApiConfig

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors.

    Attributes:
        message: Human readable reason.
        status: HTTP status code (0 when no response was received).
        code: Optional application-specific error code.
    """

    def __init__(self, message: str, status: int = 0, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class NetworkError(APIError):
    """The API could not be reached or the request timed out."""


class RemoteError(APIError):
    """The API answered with a non-success status."""


class NotFoundError(RemoteError):
    """Resource not found."""


class TodoRequest(BaseModel):
    """Request body for create and update calls.

    Serialized with camelCase keys; unset optional fields are omitted.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    entity_id: int | None = None
    title: str
    description: str | None = None
    completed: bool = False
    priority: str = "medium"
    due_date: str | None = None
    user_id: int | None = None
    created_at: str | None = None

    def to_json(self) -> dict[str, Any]:
        """Render the JSON body sent to the API."""
        return self.model_dump(by_alias=True, exclude_none=True)


class RemoteTodo(BaseModel):
    """Todo as returned by the API.

    Timestamps are offset-aware when the server sends an offset (``Z`` or
    ``+01:00``) and naive otherwise.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: int
    title: str
    completed: bool = False
    priority: str = "medium"
    description: str | None = None
    due_date: str | None = None
    user_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> RemoteTodo:
        """Create from API response dictionary."""
        return cls.model_validate(data)


_TODO_LIST = pydantic.TypeAdapter(list[RemoteTodo])


class TodoClient:
    """HTTP client for the todo API.

    Implements the remote client contract used by SyncCoordinator:
    health_check(), create(), update() and delete().
    """

    def __init__(self, config: ApiConfig, transport: httpx.BaseTransport | None = None) -> None:
        """Initialize the client.

        Args:
            config: API configuration (base URL and timeout).
            transport: Optional custom transport (used by tests).
        """
        self._config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._config.base_url

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> TodoClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and translate transport failures.

        Raises:
            NetworkError: On timeout or connection failure.
            RemoteError: On a non-2xx response.
        """
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.debug("%s %s timed out: %s", method, url, e)
            raise NetworkError("Request timeout", 0, "TIMEOUT") from e
        except httpx.RequestError as e:
            logger.debug("%s %s failed: %s", method, url, e)
            raise NetworkError("Network error - check connection", 0, "NETWORK_ERROR") from e
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Raise the appropriate exception for a non-success response."""
        if response.is_success:
            return response

        body = response.text
        try:
            data = response.json()
        except ValueError:
            data = {"message": body}
        if not isinstance(data, dict):
            data = {"message": body}

        message = data.get("message") or data.get("error") or f"HTTP {response.status_code}"
        code = data.get("code")

        if response.status_code == 404:
            raise NotFoundError(message, 404, code)
        raise RemoteError(message, response.status_code, code)

    def _decode_todo(self, response: httpx.Response) -> RemoteTodo:
        """Decode a todo from a success response.

        Raises:
            RemoteError: If the body is not a todo.
        """
        try:
            return RemoteTodo.model_validate_json(response.content)
        except pydantic.ValidationError as e:
            raise RemoteError(
                f"Invalid todo in response: {e}", response.status_code, "INVALID_RESPONSE"
            ) from e

    def _written_todo(self, response: httpx.Response) -> RemoteTodo | None:
        """Decode the body of a committed write.

        The server has already applied the write, so a body that cannot be
        decoded is logged and None is returned instead of raising.
        """
        try:
            return self._decode_todo(response)
        except RemoteError as e:
            logger.warning(
                "%s %s succeeded but its response was not decoded: %s",
                response.request.method,
                response.request.url,
                e.message,
            )
            return None

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the API is reachable.

        Returns:
            True if the API answered with a success status. Never raises.
        """
        try:
            self._request("GET", "/api/todos")
            return True
        except APIError as e:
            logger.debug("Health check failed: %s", e)
            return False

    # === Read operations ===

    def list_todos(
        self,
        completed: bool | None = None,
        priority: str | None = None,
    ) -> list[RemoteTodo]:
        """List todos on the server.

        Args:
            completed: Optional completion filter.
            priority: Optional priority filter.

        Returns:
            List of todos.
        """
        params: dict[str, str] = {}
        if completed is not None:
            params["completed"] = "true" if completed else "false"
        if priority:
            params["priority"] = priority
        response = self._request("GET", "/api/todos", params=params)
        try:
            return _TODO_LIST.validate_json(response.content)
        except pydantic.ValidationError as e:
            raise RemoteError(
                f"Invalid todo list in response: {e}", response.status_code, "INVALID_RESPONSE"
            ) from e

    def get_todo(self, todo_id: int) -> RemoteTodo:
        """Get a todo by id.

        Raises:
            NotFoundError: If the todo does not exist.
            RemoteError: If the response body is not a todo.
        """
        response = self._request("GET", f"/api/todos/{todo_id}")
        return self._decode_todo(response)

    # === Write operations (remote client contract) ===

    def create(self, request: TodoRequest) -> RemoteTodo | None:
        """Create a todo on the server.

        Args:
            request: Todo fields.

        Returns:
            Created todo, or None if the server accepted the write but its
            response body could not be decoded.
        """
        response = self._request("POST", "/api/todos", json=request.to_json())
        return self._written_todo(response)

    def update(self, todo_id: int, request: TodoRequest) -> RemoteTodo | None:
        """Replace a todo on the server.

        Args:
            todo_id: Remote todo id.
            request: New todo fields.

        Returns:
            Updated todo, or None if its response body could not be decoded.

        Raises:
            NotFoundError: If the todo does not exist.
        """
        response = self._request("PUT", f"/api/todos/{todo_id}", json=request.to_json())
        return self._written_todo(response)

    def delete(self, todo_id: int) -> None:
        """Delete a todo on the server.

        Args:
            todo_id: Remote todo id.
        """
        self._request("DELETE", f"/api/todos/{todo_id}")
