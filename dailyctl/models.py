"""Data models for programs, executions and schedule state."""

from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class MessageTag(str, Enum):
    """Kinds of lines in an execution log."""
    OUT = "out"
    ERR = "err"
    OK = "ok"
    FAIL = "fail"


class Message(BaseModel):
    """One tagged line of an execution log."""
    model_config = ConfigDict(frozen=True)

    tag: MessageTag
    text: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ExitCode(IntEnum):
    """Exit statuses every managed program must honour."""
    SUCCESS = 0
    RETRY = 1
    FAILED = 2


class ExecutionStatus(str, Enum):
    """Execution lifecycle states."""
    RUNNING = "running"
    SUCCESS = "success"
    RETRY = "retry"
    FAILED = "failed"
    INTERNAL_ERROR = "internal_error"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


class ProgramState(str, Enum):
    """Per-program schedule states for the current day."""
    IDLE = "idle"
    DUE = "due"
    RUNNING = "running"
    RETRY_SCHEDULED = "retry_scheduled"
    DONE_TODAY = "done_today"


class ExecutionResult(BaseModel):
    """Published by the executor once an execution is terminal."""
    program: str
    execution_id: str
    status: ExecutionStatus
    exit_code: Optional[int] = None


class ExecutionSummary(BaseModel):
    """Read-only view of an execution."""
    id: str
    program: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: ExecutionStatus
    message_count: int = 0


class ScheduleStatus(BaseModel):
    """Read-only view of one program's schedule state."""
    program: str
    state: ProgramState
    run_day: Optional[date] = None
    retry_at: Optional[datetime] = None
    attempts: int = 0
    last_status: Optional[ExecutionStatus] = None
