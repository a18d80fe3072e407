from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_approve: Callable[[], Awaitable[None]],
        on_decline: Callable[[], Awaitable[None]],
        on_stop: Callable[[], Awaitable[None]],
        on_status: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_approve = on_approve
        self._on_decline = on_decline
        self._on_stop = on_stop
        self._on_status = on_status
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command = trimmed.split(maxsplit=1)[0].lower()
        if command == "/help":
            await self._on_help()
            return True
        if command == "/approve":
            await self._on_approve()
            return True
        if command == "/decline":
            await self._on_decline()
            return True
        if command == "/stop":
            await self._on_stop()
            return True
        if command == "/status":
            await self._on_status()
            return True

        self._on_unknown(trimmed)
        return True
