"""echo 指令：將參數以空白連接後輸出。"""

from __future__ import annotations

from virtual_shell.commands.base import BaseCommand
from virtual_shell.errors import ErrorKind, no_command
from virtual_shell.types import CommandResult


class EchoCommand(BaseCommand):
    async def execute(self, args: list[str]) -> CommandResult:
        if not args:
            return self.fail(ErrorKind.NO_COMMAND, no_command('echo'))
        return self.ok(' '.join(args))
