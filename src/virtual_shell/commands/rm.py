"""rm 指令：移除檔案，-r 時遞迴移除目錄，-f 時忽略不存在的路徑。"""

from __future__ import annotations

from virtual_shell.commands.base import BaseCommand, parse_flags
from virtual_shell.errors import ErrorKind, ShellError, missing_operand, no_command, no_such_directory
from virtual_shell.types import CommandResult


class RmCommand(BaseCommand):
    async def execute(self, args: list[str]) -> CommandResult:
        if not args:
            return self.fail(ErrorKind.NO_COMMAND, no_command('rm'))

        try:
            flags, operands = parse_flags(args, 'rRf')
        except ShellError as exc:
            return self.fail(exc.kind, exc.message)
        if not operands:
            return self.fail(ErrorKind.MISSING_OPERAND, missing_operand('rm'))

        recursive = bool(flags & {'r', 'R'})
        force = 'f' in flags
        for target in (self.resolve_path(operand) for operand in operands):
            if target == '/':
                return self.fail(ErrorKind.PERMISSION_DENIED, "rm: it is dangerous to operate recursively on '/'")
            try:
                stats = await self.fs.lstat(target)
                if stats.is_directory() and not recursive:
                    return self.fail(ErrorKind.UNKNOWN, f"rm: cannot remove '{target}': Is a directory")
                await self.fs.rm(target, recursive=recursive)
            except (FileNotFoundError, NotADirectoryError):
                if force:
                    continue
                return self.fail(ErrorKind.NO_SUCH_DIRECTORY, no_such_directory(target, 'rm'))
            except OSError as exc:
                return self.fail(ErrorKind.UNKNOWN, f"rm: cannot remove '{target}': {exc.strerror}")

        return self.ok()
