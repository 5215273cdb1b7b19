"""
Inbound message dispatch.
Commands first, then an active (or starting) group registration, then the
marketplace conversation. Messages of one user are drained in arrival
order by a per-user queue while different users run concurrently.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from marketbot.core.agent.models import Response
from marketbot.core.agent.orchestrator import Orchestrator
from marketbot.core.registration import RegistrationFlow

logger = logging.getLogger(__name__)

Deliver = Callable[[str, Response], Awaitable[None]]


class Dispatcher:
    """Picks the component that owns an inbound message."""

    def __init__(self, orchestrator: Orchestrator, registration: Optional[RegistrationFlow] = None):
        self.orchestrator = orchestrator
        self.registration = registration

    async def handle(self, user_id: str, text: str) -> Response:
        """
        Produce the reply to one inbound message.

        Args:
            user_id: Chat user id
            text: Raw message text

        Returns:
            Response to deliver
        """
        user_id = str(user_id)
        text = (text or "").strip()

        # Command prefix is checked by the orchestrator itself
        if self.registration is not None and not text.startswith(self.orchestrator.command_prefix):
            response = await self.registration.process_group_command(user_id, text)
            if response is not None:
                return response

        return await self.orchestrator.process(user_id, text)


class UserWorkQueue:
    """One FIFO and one drain task per active user."""

    def __init__(self, dispatcher: Dispatcher, deliver: Deliver):
        self.dispatcher = dispatcher
        self.deliver = deliver
        self._queues: dict[str, asyncio.Queue] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def submit(self, user_id: str, text: str) -> None:
        """Enqueue a message and return immediately."""
        user_id = str(user_id)
        queue = self._queues.get(user_id)
        if queue is None:
            queue = self._queues[user_id] = asyncio.Queue()
        queue.put_nowait(text)

        if user_id not in self._tasks:
            self._tasks[user_id] = asyncio.create_task(self._drain(user_id, queue))

    async def _drain(self, user_id: str, queue: asyncio.Queue) -> None:
        try:
            while not queue.empty():
                text = queue.get_nowait()
                try:
                    response = await self.dispatcher.handle(user_id, text)
                    await self.deliver(user_id, response)
                except Exception as e:
                    logger.error(f"Failed to handle message from {user_id}: {e}", exc_info=True)
                finally:
                    queue.task_done()
        finally:
            # No await between the empty check and cleanup: submit() cannot slip in
            self._tasks.pop(user_id, None)
            self._queues.pop(user_id, None)

    async def join(self) -> None:
        """Wait until every queued message has been handled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks.values()):
            task.cancel()
        await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
        self._tasks.clear()
        self._queues.clear()

    def __len__(self) -> int:
        return len(self._tasks)
