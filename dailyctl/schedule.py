"""Daily scheduling and retry handling for programs."""

import logging
import queue
import threading
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, Iterable, List, Optional
from .config import Settings
from .exceptions import LaunchError
from .executor import Executor
from .log import program_log
from .models import ExecutionResult, ExecutionStatus, ProgramState, ScheduleStatus
from .program import Program

logger = logging.getLogger(__name__)

Observer = Callable[[ScheduleStatus], None]


class DailyTrigger:
    """Fires once per calendar day at a fixed local time."""

    def __init__(self, at: time):
        self.at = at

    def is_due(self, now: datetime, run_day: Optional[date]) -> bool:
        """True if today's trigger time has passed and today has not been run."""
        return now.time() >= self.at and run_day != now.date()

    def next_fire(self, now: datetime, run_day: Optional[date]) -> datetime:
        today = datetime.combine(now.date(), self.at)
        if run_day == now.date():
            return today + timedelta(days=1)
        return max(now, today)


class ProgramScheduler:
    """Drives one program through its daily run/retry cycle.

    This is the only writer of the program's schedule state and the only
    caller of Executor.execute for it. A run or retry chain that crosses
    midnight is never cancelled; the new day's trigger is considered once
    the chain is done.
    """

    def __init__(
        self,
        program: Program,
        executor: Executor,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.program = program
        self.executor = executor
        self.settings = settings or executor.settings
        self.clock = clock
        self.schedule = self.settings.schedule_for(program.config)
        self.trigger = DailyTrigger(self.schedule.daily_at)

        self.state = ProgramState.IDLE
        self.run_day: Optional[date] = None
        self.retry_at: Optional[datetime] = None
        self.attempts = 0
        self.last_status: Optional[ExecutionStatus] = None

        self._results: "queue.Queue[ExecutionResult]" = queue.Queue()
        self._observers: List[Observer] = []
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._log = program_log(program, __name__)

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def status(self) -> ScheduleStatus:
        return ScheduleStatus(
            program=self.program.name,
            state=self.state,
            run_day=self.run_day,
            retry_at=self.retry_at,
            attempts=self.attempts,
            last_status=self.last_status,
        )

    def _transition(self, state: ProgramState) -> None:
        self._log.debug("%s -> %s", self.state.value, state.value)
        self.state = state
        snapshot = self.status()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                self._log.exception("Schedule observer failed")

    def tick(self) -> float:
        """Advance the state machine once. Returns seconds until the next tick."""
        now = self.clock()

        if self.state in (ProgramState.IDLE, ProgramState.DONE_TODAY):
            if self.trigger.is_due(now, self.run_day):
                self.run_day = now.date()
                self.attempts = 0
                self._transition(ProgramState.DUE)
        elif self.state is ProgramState.RETRY_SCHEDULED and now >= self.retry_at:
            self.retry_at = None
            self._transition(ProgramState.DUE)

        if self.state is ProgramState.DUE:
            self._run()
            return 0.0

        return self._seconds_until_wakeup(now)

    def _run(self) -> None:
        self._transition(ProgramState.RUNNING)
        self.attempts += 1
        try:
            self.executor.execute(self.program, self._results)
        except LaunchError as e:
            # Not retried; the next daily trigger tries again.
            self._log.error("Launch failed: %s", e.cause)
            self.last_status = ExecutionStatus.FAILED
            self._transition(ProgramState.DONE_TODAY)
            return
        except Exception:
            self._log.exception("Unexpected error launching program")
            self.last_status = ExecutionStatus.INTERNAL_ERROR
            self._transition(ProgramState.DONE_TODAY)
            return

        result = self._results.get()
        self.on_result(result)

    def on_result(self, result: ExecutionResult) -> None:
        """Apply an execution outcome to the schedule."""
        self.last_status = result.status
        if result.status is ExecutionStatus.RETRY:
            self.retry_at = self.clock() + self.schedule.retry_delay
            self._log.info("Retry requested, next attempt at %s", self.retry_at.isoformat())
            self._transition(ProgramState.RETRY_SCHEDULED)
            return

        self._log.info("Done for %s: %s", self.run_day, result.status.value)
        self._transition(ProgramState.DONE_TODAY)

    def _seconds_until_wakeup(self, now: datetime) -> float:
        if self.state is ProgramState.RETRY_SCHEDULED:
            wakeup = self.retry_at
        else:
            wakeup = self.trigger.next_fire(now, self.run_day)
        seconds = (wakeup - now).total_seconds()
        return max(0.0, min(seconds, self.settings.poll_interval_seconds))

    def run(self) -> None:
        """Tick until stopped. An in-flight execution is always awaited."""
        self._log.info("Scheduler started, daily at %s", self.schedule.daily_at.isoformat())
        while not self._stop.is_set():
            try:
                delay = self.tick()
            except Exception:
                self._log.exception("Scheduler error")
                delay = self.settings.poll_interval_seconds
            if delay > 0:
                self._stop.wait(delay)
        self._log.info("Scheduler stopped")

    def start(self) -> None:
        if self._thread is None:
            self._thread = threading.Thread(
                target=self.run, name=f"{self.program.name}-scheduler", daemon=True
            )
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


class ScheduleEngine:
    """Runs one independent scheduler per program."""

    def __init__(
        self,
        programs: Iterable[Program],
        settings: Optional[Settings] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings or Settings()
        self.executor = executor or Executor(self.settings)
        self._schedulers: Dict[str, ProgramScheduler] = {}
        for program in programs:
            if program.name in self._schedulers:
                raise ValueError(f"Duplicate program name: {program.name}")
            self._schedulers[program.name] = ProgramScheduler(
                program, self.executor, self.settings, clock
            )

    def scheduler(self, name: str) -> ProgramScheduler:
        return self._schedulers[name]

    def programs(self) -> List[Program]:
        return [s.program for s in self._schedulers.values()]

    def add_observer(self, observer: Observer) -> None:
        for s in self._schedulers.values():
            s.add_observer(observer)

    def status(self) -> List[ScheduleStatus]:
        return [s.status() for s in self._schedulers.values()]

    def start(self) -> None:
        logger.info("Starting %d program scheduler(s)", len(self._schedulers))
        for s in self._schedulers.values():
            s.start()

    def stop(self) -> None:
        for s in self._schedulers.values():
            s.stop()

    def join(self, timeout: Optional[float] = None) -> None:
        for s in self._schedulers.values():
            s.join(timeout)
