"""Task and scan management.

Public API:
    TaskSupervisor: Spawns, tracks and terminates command processes
    Task / TaskStatus: Per-invocation state and lifecycle
    ScanController / ScanState: Background workspace scanning
    CompassSession: Wires configuration, detection and tasks together
"""

from .scanner import ScanController, ScanState
from .session import CompassSession
from .supervisor import TaskSupervisor
from .task import LogLine, LogStream, Task, TaskStatus

__all__ = [
    "CompassSession",
    "LogLine",
    "LogStream",
    "ScanController",
    "ScanState",
    "Task",
    "TaskStatus",
    "TaskSupervisor",
]
