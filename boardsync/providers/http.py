"""REST task store over httpx."""

import asyncio
from typing import TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from boardsync.errors import FetchCancelled, StoreError
from boardsync.filters import TaskFilters
from boardsync.models import ItemStatus, Profile, WorkItem
from boardsync.providers.base import TaskStore
from boardsync.settings import BoardSyncSettings

ModelT = TypeVar("ModelT", bound=BaseModel)


class HttpTaskStore(TaskStore):
    def __init__(self, settings: BoardSyncSettings, client: httpx.AsyncClient | None = None) -> None:
        if not settings.api_url:
            raise RuntimeError("api_url is required")
        self._base_url = settings.api_url.rstrip("/")
        self._timeout = settings.request_timeout
        self._headers = {"Accept": "application/json"}
        if settings.api_token:
            self._headers["Authorization"] = f"Bearer {settings.api_token.get_secret_value()}"
        self._client = client

    async def __aenter__(self) -> "HttpTaskStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, headers=self._headers, timeout=self._timeout)
        return self._client

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict | list:
        try:
            response = await self._http().request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise StoreError(f"{method} {path} failed: {exc}") from exc
        if response.status_code == 401:
            raise StoreError("Board API returned 401. Check api_token for the active profile.")
        if response.status_code == 404:
            raise StoreError(f"{method} {path}: not found")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(response)
            raise StoreError(f"{method} {path} returned {response.status_code}: {detail}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError(f"{method} {path} returned a non-JSON body") from exc

    async def move_item(
        self,
        item_id: str,
        status: ItemStatus,
        rank: int,
        completed_by: str | None = None,
        clear_completed_by: bool = False,
    ) -> WorkItem:
        body: dict = {"status": status.value, "rank": rank}
        if completed_by is not None:
            body["completedBy"] = completed_by
        elif clear_completed_by:
            body["completedBy"] = None
        node = await self._request("PATCH", f"/items/{item_id}", json=body)
        return _parse(WorkItem, node)

    async def list_items(
        self,
        project_id: str,
        filters: TaskFilters | None = None,
        cancelled: asyncio.Event | None = None,
    ) -> list[WorkItem]:
        if cancelled is not None and cancelled.is_set():
            raise FetchCancelled(f"Listing items for '{project_id}' was cancelled")
        body = {"filters": filters.model_dump(mode="json") if filters else None}
        nodes = await self._request("POST", f"/projects/{project_id}/items/query", json=body)
        if cancelled is not None and cancelled.is_set():
            raise FetchCancelled(f"Listing items for '{project_id}' was cancelled")
        if isinstance(nodes, dict):
            nodes = nodes.get("items", [])
        return [_parse(WorkItem, node) for node in nodes]

    async def list_members(self, project_id: str) -> list[Profile]:
        nodes = await self._request("GET", f"/projects/{project_id}/members")
        if isinstance(nodes, dict):
            nodes = nodes.get("members", [])
        return [_parse(Profile, node) for node in nodes]


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict) and "error" in data:
        return str(data["error"])
    return str(data)


def _parse(model: type[ModelT], node: object) -> ModelT:
    try:
        return model.model_validate(node)
    except ValidationError as exc:
        raise StoreError(f"Board API returned an unreadable {model.__name__}: {exc.error_count()} error(s)") from exc
