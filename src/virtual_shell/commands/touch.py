"""touch 指令：更新檔案時間戳記，檔案不存在時建立空檔案。"""

from __future__ import annotations

from virtual_shell.commands.base import BaseCommand
from virtual_shell.errors import ErrorKind, missing_operand
from virtual_shell.types import CommandError, CommandResult


class TouchCommand(BaseCommand):
    async def execute(self, args: list[str]) -> CommandResult:
        if not args:
            return self.fail(ErrorKind.MISSING_OPERAND, missing_operand('touch'))

        for file_name in args:
            file_path = self.resolve_path(file_name)
            try:
                await self.fs.utimes(file_path)
            except FileNotFoundError:
                error = await self._create_file(file_path)
                if error is not None:
                    return error
            except OSError as exc:
                return self.fail(ErrorKind.UNKNOWN, f"touch: cannot touch '{file_name}': {exc.strerror}")

        return self.ok()

    async def _create_file(self, file_path: str) -> CommandError | None:
        try:
            await self.fs.write_file(file_path, '')
        except OSError as exc:
            kind = ErrorKind.PERMISSION_DENIED if isinstance(exc, PermissionError) else ErrorKind.UNKNOWN
            return self.fail(kind, f"touch: cannot create file '{file_path}': {exc.strerror}")
        return None
