import unittest

from agent_workshop.exceptions import StateTransitionError
from agent_workshop.models import SessionSnapshot
from tests.fakes import ManualScheduler, make_agent, make_machine


class AgentLifecycleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.scheduler = ManualScheduler()
        self.machine = make_machine(self.scheduler)
        self.root_id = "agent-s1"

    def test_new_agent_starts_spawning_and_is_root(self) -> None:
        agent = self.machine.get_agent(self.root_id)
        self.assertEqual("spawning", agent.status)
        self.assertIs(agent, self.machine.root_agent)

    def test_forward_transitions_apply(self) -> None:
        self.assertTrue(self.machine.transition_agent(self.root_id, "working"))
        self.assertTrue(self.machine.transition_agent(self.root_id, "thinking"))
        self.assertEqual("thinking", self.machine.get_agent(self.root_id).status)

    def test_same_status_is_a_no_op(self) -> None:
        self.machine.transition_agent(self.root_id, "working")
        self.assertFalse(self.machine.transition_agent(self.root_id, "working"))

    def test_terminal_status_is_sticky_and_stamps_finish_once(self) -> None:
        self.scheduler.advance(5.0)
        self.machine.transition_agent(self.root_id, "done")
        finished_at = self.machine.get_agent(self.root_id).finished_at
        self.assertEqual(1005.0, finished_at)

        self.scheduler.advance(5.0)
        self.assertFalse(self.machine.transition_agent(self.root_id, "working"))
        self.assertFalse(self.machine.transition_agent(self.root_id, "error"))
        agent = self.machine.get_agent(self.root_id)
        self.assertEqual("done", agent.status)
        self.assertEqual(finished_at, agent.finished_at)

    def test_returning_to_spawning_is_rejected(self) -> None:
        self.machine.transition_agent(self.root_id, "working")
        with self.assertRaises(StateTransitionError):
            self.machine.transition_agent(self.root_id, "spawning")

    def test_unknown_agent_or_status_is_rejected(self) -> None:
        with self.assertRaises(StateTransitionError):
            self.machine.transition_agent("agent-missing", "working")
        with self.assertRaises(StateTransitionError):
            self.machine.transition_agent(self.root_id, "dancing")

    def test_add_agent_validates_parent_and_session(self) -> None:
        with self.assertRaises(StateTransitionError):
            self.machine.add_agent(make_agent("agent-s1-sub-1", parent="agent-nope"))
        with self.assertRaises(StateTransitionError):
            self.machine.add_agent(make_agent("agent-other", session_id="s2"))
        with self.assertRaises(StateTransitionError):
            self.machine.add_agent(make_agent(self.root_id))

        child = self.machine.add_agent(make_agent("agent-s1-sub-1", name="Pip", parent=self.root_id))
        self.assertFalse(child.is_root)
        self.assertEqual(self.root_id, self.machine.root_agent.id)

    def test_transition_all_counts_changes(self) -> None:
        self.machine.add_agent(make_agent("agent-s1-sub-1", name="Pip", parent=self.root_id))
        self.machine.transition_agent(self.root_id, "done")
        self.assertEqual(1, self.machine.transition_all_agents("done"))
        self.assertTrue(all(a.status == "done" for a in self.machine.agents))


class EventLogTests(unittest.TestCase):
    def setUp(self) -> None:
        self.scheduler = ManualScheduler()
        self.machine = make_machine(self.scheduler)

    def test_events_are_stamped_and_attributed(self) -> None:
        self.scheduler.advance(2.0)
        event = self.machine.append_event("agent-s1", "output", {"text": "hi"})

        self.assertEqual(1002.0, event.timestamp)
        self.assertEqual("Spark", event.agent_name)
        self.assertEqual("claude-code", event.runtime)
        self.assertIn("Spark", event.funny_status)
        self.assertEqual((event,), self.machine.events)

    def test_tool_calls_are_recorded_once_per_tool(self) -> None:
        self.machine.append_event("agent-s1", "tool_call", {"tool": "Read"})
        self.machine.append_event("agent-s1", "tool_call", {"tool": "Bash"})
        self.machine.append_event("agent-s1", "tool_call", {"tool": "Read"})
        self.machine.append_event("agent-s1", "tool_call", {"input": {}})

        self.assertEqual(("Read", "Bash"), self.machine.get_agent("agent-s1").tools_used)

    def test_event_for_unknown_agent_is_rejected(self) -> None:
        with self.assertRaises(StateTransitionError):
            self.machine.append_event("agent-ghost", "output", {})
        self.assertEqual((), self.machine.events)

    def test_touch_records_activity(self) -> None:
        self.assertEqual(0.0, self.machine.last_event_at)
        self.scheduler.advance(4.0)
        self.machine.touch()
        self.assertEqual(1004.0, self.machine.last_event_at)


class SessionLifecycleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.scheduler = ManualScheduler()
        self.machine = make_machine(self.scheduler)

    def test_complete_happens_once(self) -> None:
        self.assertTrue(self.machine.complete())
        self.assertFalse(self.machine.complete())
        self.assertFalse(self.machine.cancel())
        self.assertEqual("completed", self.machine.session.status)
        self.assertFalse(self.machine.is_active)

    def test_session_can_only_end_in_a_terminal_status(self) -> None:
        with self.assertRaises(StateTransitionError):
            self.machine._end("active")
        self.assertTrue(self.machine.is_active)

    def test_ending_cancels_pending_timers(self) -> None:
        fired: list[int] = []
        self.machine.timers.schedule(1.5, lambda: fired.append(1))
        self.machine.cancel()
        self.scheduler.advance(5.0)
        self.assertEqual([], fired)

    def test_snapshots_do_not_change_afterwards(self) -> None:
        before = self.machine.snapshot()
        self.machine.transition_agent("agent-s1", "working")
        self.machine.append_event("agent-s1", "output", {"text": "x"})

        self.assertEqual("spawning", before.agents[0].status)
        self.assertEqual((), before.events)
        self.assertEqual("working", self.machine.snapshot().agents[0].status)

    def test_listeners_see_each_change_and_failures_are_isolated(self) -> None:
        seen: list[SessionSnapshot] = []

        def broken(snapshot: SessionSnapshot) -> None:
            raise RuntimeError("listener bug")

        self.machine.subscribe(broken)
        unsubscribe = self.machine.subscribe(seen.append)
        self.machine.transition_agent("agent-s1", "working")
        unsubscribe()
        self.machine.transition_agent("agent-s1", "thinking")

        self.assertEqual(1, len(seen))
        self.assertEqual("working", seen[0].agents[0].status)

    def test_external_session_id_is_recorded(self) -> None:
        self.machine.set_external_session_id("cli-123")
        self.assertEqual("cli-123", self.machine.session.external_session_id)

    def test_disposed_machine_refuses_mutation(self) -> None:
        self.machine.dispose()
        self.machine.dispose()
        self.assertFalse(self.machine.alive)
        with self.assertRaises(StateTransitionError):
            self.machine.append_event("agent-s1", "output", {})
        with self.assertRaises(StateTransitionError):
            self.machine.touch()


if __name__ == "__main__":
    unittest.main()
