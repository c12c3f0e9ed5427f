"""內建指令模組。

BUILTIN_COMMANDS 是預設注入 VirtualShell 的指令工廠對應表。
"""

from virtual_shell.commands.base import BaseCommand, parse_flags
from virtual_shell.commands.cat import CatCommand
from virtual_shell.commands.cd import CdCommand
from virtual_shell.commands.cp import CpCommand
from virtual_shell.commands.echo import EchoCommand
from virtual_shell.commands.mkdir import MkdirCommand
from virtual_shell.commands.rm import RmCommand
from virtual_shell.commands.touch import TouchCommand

BUILTIN_COMMANDS: dict[str, type[BaseCommand]] = {
    'cat': CatCommand,
    'cd': CdCommand,
    'cp': CpCommand,
    'echo': EchoCommand,
    'mkdir': MkdirCommand,
    'rm': RmCommand,
    'touch': TouchCommand,
}

__all__ = [
    'BUILTIN_COMMANDS',
    'BaseCommand',
    'CatCommand',
    'CdCommand',
    'CpCommand',
    'EchoCommand',
    'MkdirCommand',
    'RmCommand',
    'TouchCommand',
    'parse_flags',
]
