"""Errors raised by dailyctl."""


class DailyctlError(Exception):
    """Base class for dailyctl errors."""


class LaunchError(DailyctlError):
    """A program's process could not be started."""

    def __init__(self, program: str, cause: object):
        self.program = program
        self.cause = cause
        super().__init__(f"{program}: failed to start: {cause}")


class ProgramBusyError(LaunchError):
    """The program already has an execution in flight."""

    def __init__(self, program: str, execution_id: str):
        self.execution_id = execution_id
        super().__init__(program, f"execution {execution_id} still running")


class InvalidTransitionError(DailyctlError):
    """An execution status change that is not running -> terminal."""


class LogClosedError(DailyctlError):
    """Append to a message log that has been closed."""


class ConfigError(DailyctlError):
    """A per-program configuration file could not be used."""
