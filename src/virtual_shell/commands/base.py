"""指令基底類別。

提供所有內建指令共用的狀態與方法：路徑解析、旗標解析、
PATH 搜尋路徑，以及在沙箱中執行函數。
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from virtual_shell.errors import ErrorKind, ShellError, invalid_operator
from virtual_shell.sandbox.base import ExecResult, SandboxFunction
from virtual_shell.types import CommandError, CommandOutput, CommandResult

if TYPE_CHECKING:
    from virtual_shell.filesystem.bridge import VirtualFilesystemBridge
    from virtual_shell.shell import VirtualShell


def parse_flags(args: list[str], allowed: str) -> tuple[set[str], list[str]]:
    """解析單一破折號、字母可合併的 Unix 旗標（例如 -rp）。

    '--' 之後的參數一律視為運算元；單獨的 '-' 也是運算元。

    Args:
        args: 指令參數
        allowed: 允許的旗標字母

    Returns:
        (旗標字母集合, 運算元列表)

    Raises:
        ShellError: 遇到不允許的旗標字母（INVALID_OPERATOR）
    """
    flags: set[str] = set()
    operands: list[str] = []
    only_operands = False
    for arg in args:
        if only_operands or not arg.startswith('-') or arg == '-':
            operands.append(arg)
        elif arg == '--':
            only_operands = True
        else:
            for char in arg[1:]:
                if char not in allowed:
                    raise ShellError(ErrorKind.INVALID_OPERATOR, invalid_operator(char))
                flags.add(char)
    return flags, operands


class BaseCommand:
    """所有指令的基底類別。

    子類別實作 execute()，成功時回傳 CommandOutput，失敗時回傳 CommandError。

    Attributes:
        shell: 擁有此指令的 VirtualShell（非擁有參照）
    """

    def __init__(self, shell: VirtualShell) -> None:
        self.shell = shell

    @property
    def fs(self) -> VirtualFilesystemBridge:
        return self.shell.fs

    @property
    def environment(self) -> Mapping[str, str]:
        return self.shell.environment

    async def execute(self, args: list[str]) -> CommandResult:
        raise NotImplementedError('Execute method not implemented.')

    # --- 結果建構 ---

    @staticmethod
    def ok(output: str = '') -> CommandOutput:
        return CommandOutput(output)

    @staticmethod
    def fail(kind: ErrorKind, message: str) -> CommandError:
        return CommandError(kind, message)

    # --- 共用方法 ---

    def resolve_path(self, target_path: str) -> str:
        """將路徑解析為相對於目前工作目錄的絕對路徑。"""
        return self.fs.resolve(self.shell.current_directory, target_path)

    def search_paths(self) -> list[str]:
        """從 PATH 環境變數取得指令搜尋路徑。"""
        path_env = self.environment.get('PATH', '')
        return [entry for entry in path_env.split(':') if entry]

    def list_builtin_commands(self) -> list[str]:
        """列出 shell 中已註冊的指令名稱。"""
        return self.shell.list_builtin_commands()

    async def execute_function(
        self,
        func: SandboxFunction,
        params: Mapping[str, Any] | None = None,
        timeout_ms: int | None = None,
        memory_limit_mb: int | None = None,
    ) -> ExecResult:
        """在 shell 的沙箱中執行函數。

        未指定的資源上限使用 shell 配置中的預設值。
        """
        config = self.shell.config
        return await self.shell.sandbox.run(
            func,
            params,
            timeout_ms=timeout_ms if timeout_ms is not None else config.sandbox_timeout_ms,
            memory_limit_mb=(
                memory_limit_mb if memory_limit_mb is not None else config.sandbox_memory_limit_mb
            ),
        )
