"""cat 指令：依序輸出檔案內容。"""

from __future__ import annotations

import posixpath

from virtual_shell.commands.base import BaseCommand
from virtual_shell.errors import (
    ErrorKind,
    no_command,
    no_such_directory,
    not_a_directory,
)
from virtual_shell.types import CommandResult


class CatCommand(BaseCommand):
    async def execute(self, args: list[str]) -> CommandResult:
        if not args:
            return self.fail(ErrorKind.NO_COMMAND, no_command('cat'))

        chunks: list[str] = []
        for arg in args:
            file_path = self.resolve_path(arg)
            name = posixpath.basename(file_path)
            try:
                stats = await self.fs.lstat(file_path)
                if stats.is_directory():
                    return self.fail(ErrorKind.NOT_A_DIRECTORY, not_a_directory(name, 'cat'))
                data = await self.fs.read_file(file_path)
            except (FileNotFoundError, NotADirectoryError):
                return self.fail(ErrorKind.NO_SUCH_DIRECTORY, no_such_directory(name, 'cat'))
            except PermissionError as exc:
                return self.fail(ErrorKind.PERMISSION_DENIED, f'cat: {name}: {exc.strerror}')
            chunks.append(str(data))

        return self.ok(''.join(chunks))
