"""Shell command execution: processes, terminals and the terminal pool."""

from .events import EventEmitter, Subscription
from .host import InProcessHost, TerminalHost
from .models import ProcessEvent, ProcessState, ShellExecutionResult, interpret_exit_code
from .process import TerminalProcess
from .process_handle import ProcessHandle, build_shell_env
from .process_tree import ProcessTree, ProcessTreeResolver
from .registry import TerminalRegistry
from .terminal import Terminal

__all__ = [
    "build_shell_env",
    "EventEmitter",
    "InProcessHost",
    "interpret_exit_code",
    "ProcessEvent",
    "ProcessHandle",
    "ProcessState",
    "ProcessTree",
    "ProcessTreeResolver",
    "ShellExecutionResult",
    "Subscription",
    "Terminal",
    "TerminalHost",
    "TerminalProcess",
    "TerminalRegistry",
]
