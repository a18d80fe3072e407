import random
import unittest

from agent_workshop.personality import generate_personality, status_message


class GeneratePersonalityTests(unittest.TestCase):
    def test_names_are_unique_until_the_pool_runs_out(self) -> None:
        rng = random.Random(7)
        used: list[str] = []
        for _ in range(15):
            used.append(generate_personality(used, rng).name)

        self.assertEqual(15, len(set(used)))
        self.assertTrue(all(" " not in name for name in used))

    def test_exhausted_pool_adds_lowest_free_suffix(self) -> None:
        rng = random.Random(3)
        used: list[str] = []
        for _ in range(15):
            used.append(generate_personality(used, rng).name)

        extra = generate_personality(used, rng)
        base, suffix = extra.name.rsplit(" ", 1)
        self.assertIn(base, used)
        self.assertEqual("2", suffix)

        again = generate_personality(used + [f"{n} 2" for n in used], rng)
        self.assertTrue(again.name.endswith(" 3"))

    def test_same_seed_gives_same_personality(self) -> None:
        first = generate_personality((), random.Random(42))
        second = generate_personality((), random.Random(42))
        self.assertEqual(first, second)


class StatusMessageTests(unittest.TestCase):
    def test_message_mentions_the_agent(self) -> None:
        self.assertIn("Pip", status_message("Pip", "working", random.Random(1)))

    def test_every_status_has_a_message(self) -> None:
        for status in ("spawning", "thinking", "working", "waiting", "chatting", "sleeping", "done", "error"):
            self.assertIn("Fern", status_message("Fern", status))


if __name__ == "__main__":
    unittest.main()
