from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from agent_workshop.backend import LocalEventChannel
from agent_workshop.exceptions import BackendError
from agent_workshop.models import AppliedOptions, TaskPlan


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying in {wait:.1f}s (attempt {attempt}/3)...")


_retry_transport = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    stop=stop_after_attempt(3),
    before_sleep=_on_retry,
    reraise=True,
)


def create_http_client(base_url: str, token: str | None = None, timeout: float = 30.0) -> httpx.AsyncClient:
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)


class HttpBackendClient:
    """Agent backend reached over JSON/HTTP.

    Start and stop are not retried: repeating them could spawn or kill a
    second process. Analysis and context building are safe to repeat.
    """

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def start_solo(
        self, project_id: str, task: str, runtime: str, options: AppliedOptions | None = None
    ) -> str:
        body = {"projectId": project_id, "task": task, "runtime": runtime, "options": _options(options)}
        data = await self._request("start_solo", "POST", "/tasks/solo", json=body)
        return _session_id(data)

    async def stop_solo(self, session_id: str) -> None:
        await self._request("stop_solo", "POST", f"/tasks/solo/{session_id}/stop")

    async def start_team(
        self, project_id: str, task_label: str, plan: TaskPlan, options: AppliedOptions | None = None
    ) -> str:
        body = {
            "projectId": project_id,
            "task": task_label,
            "plan": plan.to_dict(),
            "options": _options(options),
        }
        data = await self._request("start_team", "POST", "/tasks/team", json=body)
        return _session_id(data)

    async def stop_team(self, session_id: str) -> None:
        await self._request("stop_team", "POST", f"/tasks/team/{session_id}/stop")

    @_retry_transport
    async def analyze_task(self, task: str, project_id: str) -> TaskPlan:
        data = await self._request("analyze_task", "POST", "/tasks/analyze", json={"task": task, "projectId": project_id})
        if not isinstance(data, dict):
            raise BackendError("analyze_task", "response was not a JSON object")
        return TaskPlan.from_dict(data)

    @_retry_transport
    async def build_project_context(self, project_id: str) -> str:
        data = await self._request("build_project_context", "POST", f"/projects/{project_id}/context")
        if isinstance(data, dict):
            return str(data.get("context", ""))
        return str(data or "")

    async def extract_session_memories(self, session_id: str) -> None:
        await self._request("extract_session_memories", "POST", f"/sessions/{session_id}/memories/extract")

    async def fetch_events(self, since_seq: int, limit: int = 100) -> list[dict[str, Any]]:
        data = await self._request("fetch_events", "GET", "/events", params={"since_seq": since_seq, "limit": limit})
        events = data.get("events", []) if isinstance(data, dict) else []
        if not isinstance(events, list):
            logger.warning(f"Ignoring events page of type {type(events).__name__}")
            return []
        return [e for e in events if isinstance(e, dict)]

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> Any:
        logger.debug(f"Backend request: {operation} {method} {url}")
        response = await self._client.request(method, url, **kwargs)
        if response.status_code >= 400:
            raise BackendError(operation, response.text[:200], status_code=response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as ex:
            raise BackendError(operation, f"invalid JSON response: {ex}") from ex


def _options(options: AppliedOptions | None) -> dict[str, str]:
    return options.to_dict() if options is not None else {}


def _session_id(data: Any) -> str:
    session_id = str(data.get("sessionId", "")).strip() if isinstance(data, dict) else ""
    if not session_id:
        raise BackendError("start", "response missing sessionId")
    return session_id


class PollingEventSource:
    """Pulls backend events over HTTP and republishes them on a local channel.

    Each event is ``{"seq": int, "name": str, "payload": dict}``; sequence
    numbers at or below the last one seen are skipped so redelivery is
    harmless.
    """

    def __init__(
        self,
        client: HttpBackendClient,
        channel: LocalEventChannel,
        *,
        poll_interval_seconds: float = 0.25,
    ):
        self._client = client
        self._channel = channel
        self._poll_interval_seconds = poll_interval_seconds
        self._last_seq = 0
        self._task: asyncio.Task | None = None

    @property
    def last_seq(self) -> int:
        return self._last_seq

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def close(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception as ex:
            logger.error(f"Event polling ended with an error: {ex}")
        self._task = None

    async def poll_once(self) -> int:
        events = await self._client.fetch_events(self._last_seq)
        published = 0
        for event in events:
            seq = event.get("seq")
            if not isinstance(seq, int) or isinstance(seq, bool):
                logger.warning(f"Skipping backend event with invalid seq: {seq!r}")
                continue
            if seq <= self._last_seq:
                continue
            self._last_seq = seq
            name = str(event.get("name", ""))
            payload = event.get("payload")
            if not name or not isinstance(payload, dict):
                logger.warning(f"Skipping malformed backend event seq={seq}")
                continue
            self._channel.publish(name, payload)
            published += 1
        return published

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except (httpx.HTTPError, BackendError) as ex:
                logger.warning(f"Event poll failed: {ex}")
            except Exception as ex:
                logger.error(f"Unexpected error while polling events: {ex}")
            await asyncio.sleep(self._poll_interval_seconds)
