"""cp 指令：複製檔案，-r 時遞迴複製目錄。"""

from __future__ import annotations

import posixpath

from virtual_shell.commands.base import BaseCommand, parse_flags
from virtual_shell.errors import ErrorKind, ShellError, missing_operand, no_command, no_such_directory
from virtual_shell.types import CommandResult


class CpCommand(BaseCommand):
    async def execute(self, args: list[str]) -> CommandResult:
        """複製一或多個來源到目的地。

        目的地是既有目錄時，來源會複製到目錄內並保留原本的名稱。
        """
        if len(args) < 2:
            return self.fail(ErrorKind.NO_COMMAND, no_command('cp'))

        try:
            flags, operands = parse_flags(args, 'rR')
        except ShellError as exc:
            return self.fail(exc.kind, exc.message)
        if len(operands) < 2:
            return self.fail(ErrorKind.MISSING_OPERAND, missing_operand('cp'))

        recursive = bool(flags & {'r', 'R'})
        sources = [self.resolve_path(src) for src in operands[:-1]]
        destination = self.resolve_path(operands[-1])
        destination_is_dir = await self._is_directory(destination)

        for src in sources:
            name = posixpath.basename(src)
            target = posixpath.join(destination, name) if destination_is_dir else destination
            try:
                stats = await self.fs.lstat(src)
                if not stats.is_directory():
                    await self.fs.copy_file(src, target)
                elif not recursive:
                    return self.fail(ErrorKind.UNKNOWN, f"cp: -r not specified; omitting directory '{name}'")
                elif target == src or target.startswith(src + '/'):
                    return self.fail(
                        ErrorKind.UNKNOWN,
                        f"cp: cannot copy a directory, '{name}', into itself",
                    )
                else:
                    await self._copy_dir(src, target)
            except FileNotFoundError:
                return self.fail(ErrorKind.NO_SUCH_DIRECTORY, no_such_directory(name, 'cp'))
            except OSError as exc:
                return self.fail(ErrorKind.UNKNOWN, f"cp: cannot copy '{name}': {exc.strerror}")

        return self.ok()

    async def _is_directory(self, path: str) -> bool:
        try:
            stats = await self.fs.lstat(path)
        except (FileNotFoundError, NotADirectoryError):
            return False
        return stats.is_directory()

    async def _copy_dir(self, src: str, dest: str) -> None:
        await self.fs.mkdir(dest, recursive=True)
        for entry in await self.fs.readdir(src):
            src_path = posixpath.join(src, entry)
            dest_path = posixpath.join(dest, entry)
            if await self._is_directory(src_path):
                await self._copy_dir(src_path, dest_path)
            else:
                await self.fs.copy_file(src_path, dest_path)
