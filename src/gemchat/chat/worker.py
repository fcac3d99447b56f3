"""Background worker running orchestrator jobs on a task queue."""

from __future__ import annotations

from dataclasses import dataclass, field

from gemchat.config.settings import GenerationSettings

from .models import Attachment
from .orchestrator import GenerationOrchestrator
from .task_queue import Task, TaskQueue


@dataclass
class ChatWorker:
    """Queue sends and regenerations so the caller's thread stays free to stop them.

    Several workers let different sessions generate concurrently; the
    orchestrator keeps at most one live attempt per session.
    """

    orchestrator: GenerationOrchestrator
    queue: TaskQueue = field(default_factory=lambda: TaskQueue(max_workers=4))

    def start(self) -> None:
        self.queue.start()

    def stop(self) -> None:
        self.queue.stop()

    def send(
        self,
        session_id: str,
        text: str,
        attachment: Attachment | None = None,
        settings: GenerationSettings | None = None,
    ) -> Task:
        task = Task(self.orchestrator.send, (session_id, text, attachment, settings), label=f"send {session_id}")
        return self.queue.submit(task)

    def regenerate(self, session_id: str, settings: GenerationSettings | None = None) -> Task:
        return self.queue.submit(
            Task(self.orchestrator.regenerate, (session_id, settings), label=f"regenerate {session_id}")
        )

    def cancel(self, session_id: str) -> bool:
        """Stop the session's live generation right away, bypassing the queue."""

        return self.orchestrator.stop(session_id)
