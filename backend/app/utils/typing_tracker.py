import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional


logger = logging.getLogger(__name__)

DEFAULT_TYPING_TIMEOUT = 3.0

# (peer_id, payload) -> delivered to that peer only
TypingEmitter = Callable[[str, Dict[str, Any]], Awaitable[Any]]


def conversation_key(user_a: str, user_b: str) -> str:
    return "-".join(sorted([user_a, user_b]))


@dataclass
class TypingState:
    conversation_key: str
    peer_id: str
    expires_at: float
    expiry: asyncio.Task


class TypingTracker:
    """Per-user typing indicator that goes idle on its own after a quiet window.

    A user is either idle (no entry) or typing in exactly one conversation.
    Each start restarts a full window; stop, expiry and clear return to idle.
    Every change is emitted to the other participant only.
    """

    def __init__(self, emit: TypingEmitter, timeout: float = DEFAULT_TYPING_TIMEOUT) -> None:
        self._emit = emit
        self.timeout = timeout
        self._states: Dict[str, TypingState] = {}

    def is_typing(self, user_id: str) -> bool:
        return user_id in self._states

    def state_for(self, user_id: str) -> Optional[TypingState]:
        return self._states.get(user_id)

    async def start(self, user_id: str, peer_id: str) -> None:
        key = conversation_key(user_id, peer_id)
        previous = self._states.pop(user_id, None)
        if previous is not None:
            previous.expiry.cancel()
        loop = asyncio.get_running_loop()
        self._states[user_id] = TypingState(
            conversation_key=key,
            peer_id=peer_id,
            expires_at=loop.time() + self.timeout,
            expiry=asyncio.create_task(self._expire_after(user_id, self.timeout)),
        )
        if previous is not None and previous.peer_id != peer_id:
            await self._notify(user_id, previous, False)
        await self._notify(user_id, self._states[user_id], True)

    async def stop(self, user_id: str) -> None:
        state = self._states.pop(user_id, None)
        if state is None:
            return
        state.expiry.cancel()
        await self._notify(user_id, state, False)

    async def clear(self, user_id: str) -> None:
        """Drop the user's typing state on disconnect."""
        await self.stop(user_id)

    def shutdown(self) -> None:
        for state in self._states.values():
            state.expiry.cancel()
        self._states.clear()

    async def _expire_after(self, user_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        state = self._states.get(user_id)
        if state is None or state.expiry is not asyncio.current_task():
            return
        del self._states[user_id]
        logger.debug("Typing state for %s expired in %s", user_id, state.conversation_key)
        await self._notify(user_id, state, False)

    async def _notify(self, user_id: str, state: TypingState, is_typing: bool) -> None:
        payload = {"userId": user_id, "conversationKey": state.conversation_key, "isTyping": is_typing}
        try:
            await self._emit(state.peer_id, payload)
        except Exception:
            # typing is best effort; a failed signal is never retried
            logger.exception("Failed to emit typing state for %s", user_id)
