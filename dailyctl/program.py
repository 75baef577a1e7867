"""Programs known to the service and their execution history."""

import threading
from pathlib import Path
from typing import List, Optional
from .config import PROGRAM_CONFIG_NAME, ProgramConfig, load_program_config


class Program:
    """A named executable and its executions, oldest first."""

    def __init__(self, name: str, command_path: str, config: Optional[ProgramConfig] = None):
        self.name = name
        self.command_path = str(command_path)
        self.config = config or ProgramConfig()
        self.lock = threading.RLock()
        self._executions = []

    @classmethod
    def from_path(cls, name: str, command_path: str) -> "Program":
        """Build a program, reading config.toml next to the executable."""
        config_path = Path(command_path).parent / PROGRAM_CONFIG_NAME
        return cls(name, command_path, load_program_config(config_path))

    def __repr__(self) -> str:
        return f"Program({self.name!r}, {self.command_path!r})"

    def record(self, execution) -> None:
        """Append a new execution. Callers hold `lock`."""
        with self.lock:
            self._executions.append(execution)

    def executions(self) -> List:
        """Snapshot of the history in chronological order."""
        with self.lock:
            return list(self._executions)

    def last_execution(self):
        with self.lock:
            return self._executions[-1] if self._executions else None

    def running_execution(self):
        """The in-flight execution, if any."""
        last = self.last_execution()
        if last is not None and last.is_running:
            return last
        return None
