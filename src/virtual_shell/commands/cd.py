"""cd 指令：切換目前的工作目錄。"""

from __future__ import annotations

from virtual_shell.commands.base import BaseCommand
from virtual_shell.errors import ErrorKind, ShellError, missing_operand
from virtual_shell.types import CommandResult


class CdCommand(BaseCommand):
    async def execute(self, args: list[str]) -> CommandResult:
        """切換工作目錄，成功時輸出為空字串。"""
        if not args:
            return self.fail(ErrorKind.MISSING_OPERAND, missing_operand('cd'))
        try:
            await self.shell.change_directory(args[0])
        except ShellError as exc:
            return self.fail(exc.kind, exc.message)
        return self.ok()
