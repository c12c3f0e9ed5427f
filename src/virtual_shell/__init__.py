"""Virtual Shell 虛擬 shell 套件。

在完全虛擬化的記憶體檔案系統上執行 shell 風格的指令，
不觸及宿主的檔案系統與行程。
"""

from virtual_shell.commands import BUILTIN_COMMANDS, BaseCommand
from virtual_shell.config import ShellConfig
from virtual_shell.errors import (
    ErrorKind,
    InvalidCommandClassError,
    SandboxAllocationError,
    ShellError,
)
from virtual_shell.registry import Command, CommandRegistry
from virtual_shell.shell import VirtualShell
from virtual_shell.types import CommandError, CommandOutput, CommandResult, ParsedCommandLine

__all__ = [
    'BUILTIN_COMMANDS',
    'BaseCommand',
    'Command',
    'CommandError',
    'CommandOutput',
    'CommandRegistry',
    'CommandResult',
    'ErrorKind',
    'InvalidCommandClassError',
    'ParsedCommandLine',
    'SandboxAllocationError',
    'ShellConfig',
    'ShellError',
    'VirtualShell',
]
