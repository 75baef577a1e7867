"""Launching programs and capturing their output."""

import logging
import os
import queue
import signal
import subprocess
import threading
from typing import IO, Optional, Tuple
from .config import Settings
from .exceptions import InvalidTransitionError, LaunchError, LogClosedError, ProgramBusyError
from .execution import Execution
from .log import execution_log, program_log
from .models import ExecutionResult, ExecutionStatus, ExitCode, MessageTag
from .program import Program

logger = logging.getLogger(__name__)


def classify_exit(
    returncode: Optional[int], error: Optional[BaseException] = None
) -> Tuple[ExecutionStatus, MessageTag, str]:
    """Map a process exit status to an outcome and a status message.

    0 is success, 1 asks for a retry, 2 and any other exit code are failures.
    A status that cannot be read as an exit code (signal death, wait error,
    no status at all) is an internal error.
    """
    if error is not None or returncode is None:
        return ExecutionStatus.INTERNAL_ERROR, MessageTag.FAIL, f"failed to run {error or 'no exit status'}"

    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = f"signal {-returncode}"
        return ExecutionStatus.INTERNAL_ERROR, MessageTag.FAIL, f"failed to run: terminated by {name}"

    if returncode == ExitCode.SUCCESS:
        return ExecutionStatus.SUCCESS, MessageTag.OK, "successfully completed"

    if returncode == ExitCode.RETRY:
        status = ExecutionStatus.RETRY
    else:
        status = ExecutionStatus.FAILED
    return status, MessageTag.FAIL, f"exited with status {returncode}"


def forward_output(execution: Execution, tag: MessageTag, stream: IO[bytes], finished: threading.Event) -> None:
    """Copy one output stream into the execution log, line by line."""
    try:
        for raw in iter(stream.readline, b""):
            line = raw.decode("utf-8", errors="replace")
            if line.endswith("\n"):
                line = line[:-1]
            if line.endswith("\r"):
                line = line[:-1]
            execution.send_message(tag, line)
    except (OSError, ValueError) as e:
        execution_log(execution, __name__).warning("%s stream read error: %s", tag.value, e)
    finally:
        stream.close()
        finished.set()


class Executor:
    """Runs programs as child processes."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    def execute(self, program: Program, results: Optional[queue.Queue] = None) -> Execution:
        """Start a program and return its running execution.

        Output is captured in the background; once the process has exited and
        both streams are drained, the execution is finished and an
        ExecutionResult is put on `results`.

        Raises:
            ProgramBusyError: the program already has an execution in flight.
            LaunchError: the process could not be started.
        """
        with program.lock:
            running = program.running_execution()
            if running is not None:
                raise ProgramBusyError(program.name, running.id)

            program_log(program, __name__).info("Executing %s", program.command_path)
            try:
                process = subprocess.Popen(
                    [program.command_path],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    start_new_session=True,
                )
            except (OSError, ValueError, subprocess.SubprocessError) as e:
                program_log(program, __name__).error("Failed to start: %s", e)
                raise LaunchError(program.name, e) from e

            execution = Execution(program, self.settings.message_buffer)
            stdout_finished = threading.Event()
            stderr_finished = threading.Event()

            for tag, stream, finished in (
                (MessageTag.OUT, process.stdout, stdout_finished),
                (MessageTag.ERR, process.stderr, stderr_finished),
            ):
                threading.Thread(
                    target=forward_output,
                    args=(execution, tag, stream, finished),
                    name=f"{program.name}-{tag.value}",
                    daemon=True,
                ).start()

            threading.Thread(
                target=self._supervise,
                args=(execution, process, (stdout_finished, stderr_finished), results),
                name=f"{program.name}-supervisor",
                daemon=True,
            ).start()

            program.record(execution)

        return execution

    def _supervise(self, execution, process, forwarders_finished, results) -> None:
        """Reap the process after both streams are drained and record the outcome.

        A result is always published, even if reaping fails unexpectedly.
        """
        log = execution_log(execution, __name__)
        returncode = None
        try:
            status, tag, text, returncode = self._reap(execution, process, forwarders_finished, log)
        except Exception as e:
            log.exception("Supervisor failed")
            status, tag, text = classify_exit(None, e)

        try:
            if status is ExecutionStatus.INTERNAL_ERROR:
                log.error("%s", text)
            else:
                log.info("%s", text)
            execution.send_message(tag, text)
            execution.finish(status)
        except (InvalidTransitionError, LogClosedError) as e:
            log.error("Could not record outcome: %s", e)
        finally:
            if results is not None:
                results.put(
                    ExecutionResult(
                        program=execution.program.name,
                        execution_id=execution.id,
                        status=status,
                        exit_code=returncode,
                    )
                )

    def _reap(self, execution, process, forwarders_finished, log):
        timeout = self.settings.schedule_for(execution.program.config).run_timeout_seconds
        timed_out = threading.Event()
        watchdog = None
        if timeout is not None:
            watchdog = threading.Timer(timeout, self._kill, args=(process, timed_out, log))
            watchdog.daemon = True
            watchdog.start()

        # The process must not be waited on before its pipes are fully read.
        for finished in forwarders_finished:
            finished.wait()

        error = None
        returncode = None
        try:
            returncode = process.wait()
        except OSError as e:
            error = e
        finally:
            if watchdog is not None:
                watchdog.cancel()
                watchdog.join()

        status, tag, text = classify_exit(returncode, error)
        if timed_out.is_set():
            execution.send_message(MessageTag.FAIL, f"exceeded run timeout of {timeout:g}s")
            status, tag = ExecutionStatus.INTERNAL_ERROR, MessageTag.FAIL
        return status, tag, text, returncode

    @staticmethod
    def _kill(process, timed_out: threading.Event, log) -> None:
        """Kill the program's whole process group.

        Children left behind by a script keep the output pipes open, so the
        direct child alone is not enough.
        """
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            return
        log.warning("Run timeout exceeded, killed process group %s", process.pid)
        timed_out.set()
