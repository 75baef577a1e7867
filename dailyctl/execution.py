"""A single timed run of a program."""

import threading
import uuid
from datetime import datetime
from typing import List, Optional
from .exceptions import InvalidTransitionError
from .messages import DEFAULT_BUFFER_SIZE, MessageLog, Subscription
from .models import ExecutionStatus, ExecutionSummary, Message, MessageTag


class Execution:
    """One run of a program: its status and its captured output."""

    def __init__(self, program, buffer_size: int = DEFAULT_BUFFER_SIZE):
        self.id = uuid.uuid4().hex
        self.program = program
        self.started_at = datetime.now()
        self.finished_at: Optional[datetime] = None
        self.log = MessageLog(buffer_size)
        self._status = ExecutionStatus.RUNNING
        self._lock = threading.Lock()
        self._finished = threading.Event()

    @property
    def status(self) -> ExecutionStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status is ExecutionStatus.RUNNING

    def send_message(self, tag: MessageTag, text: str) -> None:
        """Append a tagged line to the log."""
        self.log.append(Message(tag=tag, text=text))

    def finish(self, status: ExecutionStatus) -> None:
        """Move from running to a terminal status and freeze the log."""
        if not status.is_terminal:
            raise InvalidTransitionError(f"{status.value} is not a terminal status")

        with self._lock:
            if self._status.is_terminal:
                raise InvalidTransitionError(
                    f"execution {self.id} already finished as {self._status.value}"
                )
            self._status = status
            self.finished_at = datetime.now()
            self.log.close()
        self._finished.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the execution is terminal. Returns False on timeout."""
        return self._finished.wait(timeout)

    def messages(self) -> List[Message]:
        return self.log.snapshot()

    def subscribe(self, replay: bool = False, unbounded: bool = False) -> Subscription:
        return self.log.subscribe(replay=replay, unbounded=unbounded)

    def summary(self) -> ExecutionSummary:
        return ExecutionSummary(
            id=self.id,
            program=self.program.name,
            started_at=self.started_at,
            finished_at=self.finished_at,
            status=self._status,
            message_count=len(self.log),
        )
