import asyncio
import json
import unittest

import httpx

from agent_workshop.backend import AGENT_EVENT, SESSION_COMPLETED, LocalEventChannel
from agent_workshop.backend_client import HttpBackendClient, PollingEventSource, create_http_client
from agent_workshop.exceptions import BackendError
from agent_workshop.models import AppliedOptions, PlanRole, TaskPlan


def _backend(handler) -> HttpBackendClient:
    return HttpBackendClient(httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://backend"))


class HttpBackendClientTests(unittest.TestCase):
    def test_start_solo_posts_task_and_returns_session_id(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"sessionId": "s-42"})

        async def scenario() -> str:
            backend = _backend(handler)
            try:
                return await backend.start_solo("p1", "fix bug", "claude-code", AppliedOptions(model="opus"))
            finally:
                await backend.close()

        session_id = asyncio.run(scenario())

        self.assertEqual("s-42", session_id)
        self.assertEqual("POST", seen[0].method)
        self.assertEqual("/tasks/solo", seen[0].url.path)
        self.assertEqual(
            {"projectId": "p1", "task": "fix bug", "runtime": "claude-code", "options": {"model": "opus"}},
            json.loads(seen[0].content),
        )

    def test_start_team_sends_the_plan(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"sessionId": "s-team"})

        plan = TaskPlan(complexity="team", roles=(PlanRole(name="Lead"),))

        async def scenario() -> str:
            return await _backend(handler).start_team("p1", "Write code", plan)

        self.assertEqual("s-team", asyncio.run(scenario()))
        self.assertEqual("team", bodies[0]["plan"]["complexity"])
        self.assertEqual([{"name": "Lead", "focus": ""}], bodies[0]["plan"]["roles"])
        self.assertEqual({}, bodies[0]["options"])

    def test_error_status_raises_backend_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="busy")

        async def scenario() -> None:
            await _backend(handler).stop_solo("s1")

        with self.assertRaises(BackendError) as ctx:
            asyncio.run(scenario())
        self.assertEqual(503, ctx.exception.status_code)
        self.assertIn("busy", str(ctx.exception))

    def test_missing_session_id_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": True})

        async def scenario() -> None:
            await _backend(handler).start_solo("p1", "fix bug", "claude-code")

        with self.assertRaises(BackendError):
            asyncio.run(scenario())

    def test_analyze_task_parses_the_plan(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "complexity": "team",
                    "agentCount": 2,
                    "roles": [{"name": "Lead", "focus": "coordinate"}, {"name": "Tester"}],
                    "taskGraph": [{"id": "t1", "label": "Write code", "dependsOn": []}],
                    "estimatedDuration": "10m",
                },
            )

        plan = asyncio.run(_backend(handler).analyze_task("build it", "p1"))

        self.assertTrue(plan.is_team)
        self.assertEqual(("Lead", "Tester"), tuple(r.name for r in plan.roles))
        self.assertEqual("Write code", plan.task_graph[0].label)
        self.assertEqual("10m", plan.estimated_duration)

    def test_analyze_task_retries_transport_errors(self) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"complexity": "solo"})

        plan = asyncio.run(_backend(handler).analyze_task("fix bug", "p1"))

        self.assertEqual(2, len(attempts))
        self.assertFalse(plan.is_team)

    def test_start_is_not_retried(self) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(httpx.ConnectError):
            asyncio.run(_backend(handler).start_solo("p1", "fix bug", "claude-code"))
        self.assertEqual(1, len(attempts))

    def test_empty_response_body_is_accepted(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        asyncio.run(_backend(handler).extract_session_memories("s1"))

    def test_auth_header_is_set_when_token_given(self) -> None:
        async def scenario() -> None:
            client = create_http_client("http://backend", "secret-token")
            try:
                self.assertEqual("Bearer secret-token", client.headers["Authorization"])
            finally:
                await client.aclose()

            anonymous = create_http_client("http://backend")
            try:
                self.assertNotIn("Authorization", anonymous.headers)
            finally:
                await anonymous.aclose()

        asyncio.run(scenario())


class PollingEventSourceTests(unittest.TestCase):
    def test_poll_publishes_new_events_once(self) -> None:
        pages = [
            [
                {"seq": 1, "name": AGENT_EVENT, "payload": {"session_id": "s1", "event_type": "assistant"}},
                {"seq": 2, "name": AGENT_EVENT, "payload": "garbage"},
                {"seq": 3, "name": SESSION_COMPLETED, "payload": {"session_id": "s1"}},
            ],
            [
                {"seq": 3, "name": SESSION_COMPLETED, "payload": {"session_id": "s1"}},
                {"seq": 4, "name": AGENT_EVENT, "payload": {"session_id": "s1", "event_type": "result"}},
            ],
        ]
        since: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            since.append(request.url.params["since_seq"])
            return httpx.Response(200, json={"events": pages.pop(0)})

        channel = LocalEventChannel()
        received: list[tuple[str, dict]] = []

        async def scenario() -> None:
            await channel.subscribe(AGENT_EVENT, lambda data: received.append((AGENT_EVENT, data)))
            await channel.subscribe(SESSION_COMPLETED, lambda data: received.append((SESSION_COMPLETED, data)))
            source = PollingEventSource(_backend(handler), channel)
            self.assertEqual(2, await source.poll_once())
            self.assertEqual(1, await source.poll_once())
            self.assertEqual(4, source.last_seq)

        asyncio.run(scenario())

        self.assertEqual(["0", "3"], since)
        self.assertEqual([AGENT_EVENT, SESSION_COMPLETED, AGENT_EVENT], [name for name, _ in received])

    def test_background_loop_survives_backend_errors(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(500, text="boom")
            return httpx.Response(200, json={"events": [{"seq": len(calls), "name": AGENT_EVENT, "payload": {}}]})

        channel = LocalEventChannel()
        received: list[dict] = []

        async def scenario() -> None:
            await channel.subscribe(AGENT_EVENT, received.append)
            source = PollingEventSource(_backend(handler), channel, poll_interval_seconds=0.01)
            await source.start()
            await asyncio.sleep(0.1)
            await source.close()
            await source.close()

        asyncio.run(scenario())

        self.assertGreaterEqual(len(calls), 2)
        self.assertTrue(received)

    def test_events_with_invalid_seq_are_skipped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "events": [
                        {"seq": None, "name": AGENT_EVENT, "payload": {"n": 0}},
                        {"seq": "7", "name": AGENT_EVENT, "payload": {"n": 1}},
                        {"seq": 1, "name": AGENT_EVENT, "payload": {"n": 2}},
                    ]
                },
            )

        channel = LocalEventChannel()
        received: list[dict] = []

        async def scenario() -> None:
            await channel.subscribe(AGENT_EVENT, received.append)
            source = PollingEventSource(_backend(handler), channel)
            self.assertEqual(1, await source.poll_once())
            self.assertEqual(1, source.last_seq)

        asyncio.run(scenario())
        self.assertEqual([{"n": 2}], received)

    def test_background_loop_keeps_delivering_after_a_malformed_page(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(200, json={"events": [{"seq": None, "name": AGENT_EVENT, "payload": {}}]})
            if len(calls) == 2:
                # not a list of events at all
                return httpx.Response(200, json={"events": 42})
            return httpx.Response(200, json={"events": [{"seq": len(calls), "name": AGENT_EVENT, "payload": {}}]})

        channel = LocalEventChannel()
        received: list[dict] = []

        async def scenario() -> None:
            await channel.subscribe(AGENT_EVENT, received.append)
            source = PollingEventSource(_backend(handler), channel, poll_interval_seconds=0.01)
            await source.start()
            await asyncio.sleep(0.1)
            await source.close()

        asyncio.run(scenario())

        self.assertGreaterEqual(len(calls), 3)
        self.assertTrue(received)

    def test_close_does_not_raise_when_the_loop_failed(self) -> None:
        class _FailingSource(PollingEventSource):
            async def _run(self) -> None:
                raise TypeError("broken loop")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"events": []})

        async def scenario() -> None:
            source = _FailingSource(_backend(handler), LocalEventChannel())
            await source.start()
            await asyncio.sleep(0)
            await source.close()

        asyncio.run(scenario())


if __name__ == "__main__":
    unittest.main()
