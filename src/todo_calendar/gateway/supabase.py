"""Gateway to a hosted Supabase project.

Talks to the project's PostgREST endpoint (``/rest/v1``) with httpx. Lists
and their tasks live in the ``lists`` and ``tasks`` tables; tasks reference
their list through ``list_id`` and are removed by the database's cascade when
the list is deleted.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx

from ..domain import ListDraft, Task, TaskDraft, TaskList
from ..errors import AuthenticationError, NotFoundError, RemoteError
from ..realtime.events import LISTS_TABLE, TASKS_TABLE
from .base import (
    DataGateway,
    list_from_row,
    list_updates_to_row,
    lists_in_order,
    task_from_row,
    task_updates_to_row,
)


LIST_WITH_TASKS = "*,tasks(*)"

Params = Union[Dict[str, Any], List[tuple]]


class SupabaseClient:
    """Small HTTP client for the Supabase REST and auth endpoints."""

    def __init__(self, url: str, anon_key: str,
                 token_provider: Optional[Callable[[], Optional[str]]] = None,
                 timeout: float = 30.0,
                 client: Optional[httpx.AsyncClient] = None):
        """Initialize the client.

        Args:
            url: Project URL, e.g. ``https://abc.supabase.co``
            anon_key: Public anon key of the project
            token_provider: Returns the signed-in user's access token, if any
            timeout: Request timeout in seconds
            client: Pre-built httpx client (tests pass one with a mock transport)
        """
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.token_provider = token_provider
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        await self.client.aclose()

    def headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        token = self.token_provider() if self.token_provider else None
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token or self.anon_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def rest(self, method: str, table: str, params: Optional[Params] = None,
                   json: Any = None, prefer: Optional[str] = None) -> Any:
        """Call a PostgREST table endpoint."""
        return await self.request(method, f"/rest/v1/{table}", params=params,
                                  json=json, prefer=prefer)

    async def request(self, method: str, path: str, params: Optional[Params] = None,
                      json: Any = None, prefer: Optional[str] = None,
                      token: Optional[str] = None) -> Any:
        """Make an HTTP request against the project.

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            AuthenticationError: On 401/403
            NotFoundError: On 404 or when a single row was expected but none matched
            RemoteError: On transport failures and any other error status
        """
        url = f"{self.url}{path}"
        headers = self.headers(prefer)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self.client.request(method, url, params=params,
                                                 json=json, headers=headers)
        except httpx.TimeoutException:
            raise RemoteError(f"{method} {path} timed out")
        except httpx.RequestError as e:
            raise RemoteError(f"{method} {path} failed: {e}")

        if response.status_code >= 400:
            raise self._error_for(response, method, path)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _error_for(self, response: httpx.Response, method: str, path: str) -> RemoteError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = (body.get("message") or body.get("msg") or body.get("error_description")
                   or body.get("error") or response.text or "no details")
        detail = f"{method} {path} returned {response.status_code}: {message}"

        rejected_credentials = path.startswith("/auth/") and response.status_code in (400, 422)
        if response.status_code in (401, 403) or rejected_credentials:
            return AuthenticationError(detail)
        # PGRST116: no rows for a single-row request; 23503: referenced list is gone
        if response.status_code == 404 or body.get("code") in ("PGRST116", "23503"):
            return NotFoundError(detail)
        if response.status_code == 429:
            return RemoteError(f"Rate limit exceeded: {detail}")
        return RemoteError(detail)


class SupabaseGateway(DataGateway):
    """DataGateway over the Supabase REST API."""

    def __init__(self, client: SupabaseClient):
        super().__init__()
        self.client = client

    async def fetch_range(self, user_id: str, start: str, end: str) -> List[TaskList]:
        rows = await self.client.rest("GET", LISTS_TABLE, params=[
            ("select", LIST_WITH_TASKS),
            ("user_id", f"eq.{user_id}"),
            ("date", f"gte.{start}"),
            ("date", f"lte.{end}"),
            ("order", "date.asc"),
        ])
        lists = [list_from_row(row) for row in rows or []]
        self.logger.debug(f"Fetched {len(lists)} lists between {start} and {end}")
        return lists_in_order(lists)

    async def fetch_list(self, list_id: str) -> TaskList:
        rows = await self.client.rest("GET", LISTS_TABLE, params={
            "select": LIST_WITH_TASKS,
            "id": f"eq.{list_id}",
        })
        return list_from_row(self._single(rows, "List", list_id))

    async def insert_list(self, draft: ListDraft) -> TaskList:
        rows = await self.client.rest("POST", LISTS_TABLE, json=[{
            "title": draft.title,
            "date": draft.date,
            "user_id": draft.user_id,
        }], prefer="return=representation")
        if not rows:
            raise RemoteError("No data returned from list creation")
        return list_from_row(rows[0])

    async def insert_tasks(self, list_id: str, drafts: Sequence[TaskDraft]) -> List[Task]:
        rows = await self.client.rest("POST", TASKS_TABLE, json=[
            {"title": draft.title, "completed": draft.completed, "list_id": list_id}
            for draft in drafts
        ], prefer="return=representation")
        return [task_from_row(row) for row in rows or []]

    async def update_list(self, list_id: str, updates: Dict[str, Any]) -> TaskList:
        rows = await self.client.rest(
            "PATCH", LISTS_TABLE,
            params={"id": f"eq.{list_id}", "select": LIST_WITH_TASKS},
            json=list_updates_to_row(updates),
            prefer="return=representation",
        )
        self.log_operation("update_list", list_id)
        return list_from_row(self._single(rows, "List", list_id))

    async def delete_list(self, list_id: str) -> None:
        await self.client.rest("DELETE", LISTS_TABLE, params={"id": f"eq.{list_id}"})
        self.log_operation("delete_list", list_id)

    async def update_task(self, task_id: str, updates: Dict[str, Any]) -> Task:
        rows = await self.client.rest(
            "PATCH", TASKS_TABLE,
            params={"id": f"eq.{task_id}"},
            json=task_updates_to_row(updates),
            prefer="return=representation",
        )
        self.log_operation("update_task", task_id)
        return task_from_row(self._single(rows, "Task", task_id))

    async def delete_task(self, task_id: str) -> None:
        await self.client.rest("DELETE", TASKS_TABLE, params={"id": f"eq.{task_id}"})
        self.log_operation("delete_task", task_id)

    async def close(self):
        await self.client.aclose()

    @staticmethod
    def _single(rows: Any, what: str, entity_id: str) -> Dict[str, Any]:
        if not rows:
            raise NotFoundError(f"{what} {entity_id} not found")
        return rows[0]
