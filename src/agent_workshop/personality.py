from __future__ import annotations

import random
from collections.abc import Iterable
from dataclasses import dataclass

from agent_workshop.models import AgentStatus

_NAMES = (
    "Spark", "Tinker", "Jingle", "Sprocket", "Nimble", "Flicker", "Bramble", "Thistle",
    "Cobalt", "Pip", "Fern", "Maple", "Cricket", "Rune", "Ember",
)

_AVATARS = (
    "⚡", "🔧", "🔔", "⚙️", "🏃", "🕯️", "🌿", "🌸",
    "💎", "🐦", "🍃", "🍁", "🦗", "✨", "🔥",
)

_COLORS = (
    "#FFD93D", "#FF6B6B", "#6BCB77", "#4D96FF", "#FF8B3D",
    "#E879F9", "#34D399", "#F97316", "#A78BFA", "#FB923C",
    "#38BDF8", "#FB7185", "#FACC15", "#2DD4BF", "#C084FC",
)

_QUIRKS = (
    "Leaves glitter on every file they touch",
    "Talks to their tools like old friends",
    "Hums while refactoring",
    "Insists every function needs more gears",
    "Moves so fast they blur in the terminal",
    "Lights a candle before every debug session",
    "Weaves thorny branches into error messages",
    "Presses wildflowers between pages of docs",
    "Polishes every variable name to a shine",
    "Chirps excitedly when tests pass",
    "Grows tiny ferns in the margins of code",
    "Collects autumn leaves shaped like semicolons",
    "Serenades bugs out of the codebase",
    "Carves mysterious symbols into commit messages",
    "Forges code in a tiny furnace",
)

_STATUS_MESSAGES: dict[str, tuple[str, ...]] = {
    "spawning": (
        "{name} is emerging from the workshop...",
        "{name} is dusting off their toolkit...",
        "{name} just clocked in!",
    ),
    "working": (
        "{name} is hammering away at the workbench...",
        "{name} is in the zone, do not disturb!",
        "{name} is crafting code with tiny precise hands...",
    ),
    "thinking": (
        "{name} is consulting the ancient scrolls...",
        "{name} asked for silence while they ponder...",
        "{name} is having a deep workshop epiphany...",
    ),
    "waiting": (
        "{name} is nibbling on a cookie while they wait...",
        "{name} is waiting patiently (for once)...",
    ),
    "chatting": (
        "{name} is exchanging workshop gossip with the team...",
        "{name} is in a heated debate about tabs vs spaces...",
    ),
    "sleeping": (
        "{name} is snoring quietly in the workshop corner...",
        "{name} has entered power-saving mode...",
    ),
    "done": (
        "{name} drops the wrench and takes a bow!",
        "{name} is doing a victory jig!",
    ),
    "error": (
        "{name} just tripped over a toolbox...",
        "{name} encountered a gremlin in the gears!",
    ),
}


@dataclass(frozen=True)
class Personality:
    name: str
    avatar: str
    color: str
    quirk: str


def _personality_at(index: int, name: str) -> Personality:
    return Personality(name=name, avatar=_AVATARS[index], color=_COLORS[index], quirk=_QUIRKS[index])


def generate_personality(used_names: Iterable[str] = (), rng: random.Random | None = None) -> Personality:
    """Pick a display personality whose name is not in ``used_names``.

    Once the pool is exhausted a numeric suffix is added ("Spark 2").
    """
    rng = rng or random
    used = set(used_names)
    available = [i for i, name in enumerate(_NAMES) if name not in used]
    if available:
        index = rng.choice(available)
        return _personality_at(index, _NAMES[index])

    index = rng.randrange(len(_NAMES))
    suffix = 2
    while f"{_NAMES[index]} {suffix}" in used:
        suffix += 1
    return _personality_at(index, f"{_NAMES[index]} {suffix}")


def status_message(name: str, status: AgentStatus, rng: random.Random | None = None) -> str:
    messages = _STATUS_MESSAGES.get(status) or ("{name} is busy...",)
    return (rng or random).choice(messages).replace("{name}", name)
