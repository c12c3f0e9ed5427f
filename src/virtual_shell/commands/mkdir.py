"""mkdir 指令：建立目錄，-p 時一併建立上層目錄。"""

from __future__ import annotations

import posixpath

from virtual_shell.commands.base import BaseCommand, parse_flags
from virtual_shell.errors import ErrorKind, ShellError, missing_operand, mkdir_create_failed
from virtual_shell.types import CommandResult


class MkdirCommand(BaseCommand):
    async def execute(self, args: list[str]) -> CommandResult:
        """建立每個指定的目錄。

        個別目錄失敗不會中斷其他目錄的建立，所有錯誤以換行合併後回報。
        """
        if not args:
            return self.fail(ErrorKind.MISSING_OPERAND, missing_operand('mkdir'))

        try:
            flags, operands = parse_flags(args, 'p')
        except ShellError as exc:
            return self.fail(exc.kind, exc.message)
        if not operands:
            return self.fail(ErrorKind.MISSING_OPERAND, missing_operand('mkdir'))

        errors: list[str] = []
        for directory in (self.resolve_path(operand) for operand in operands):
            try:
                await self.fs.mkdir(directory, recursive='p' in flags)
            except OSError as exc:
                errors.append(mkdir_create_failed(posixpath.basename(directory), exc.strerror or str(exc)))

        if errors:
            return self.fail(ErrorKind.UNKNOWN, '\n'.join(errors))
        return self.ok()
