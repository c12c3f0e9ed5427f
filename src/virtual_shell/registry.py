"""Command Registry 模組。

管理指令名稱到指令實例的對應，並在 shell 建構時驗證指令是否符合 Command 介面。
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from virtual_shell.errors import InvalidCommandClassError
from virtual_shell.types import CommandResult

if TYPE_CHECKING:
    from virtual_shell.shell import VirtualShell

logger = logging.getLogger(__name__)


@runtime_checkable
class Command(Protocol):
    """指令介面。

    每次呼叫彼此獨立；指令透過建構時取得的 shell 參照
    存取路徑解析、檔案系統與環境變數。
    """

    async def execute(self, args: list[str]) -> CommandResult:
        """執行指令並回傳輸出或錯誤。"""
        ...


# 由 host 提供的指令工廠：接收 shell，回傳指令實例
CommandFactory = Callable[['VirtualShell'], Any]


def validate_command(name: str, command: object) -> Command:
    """驗證物件是否符合 Command 介面。

    Args:
        name: 指令名稱（用於錯誤訊息）
        command: 指令實例

    Returns:
        通過驗證的指令

    Raises:
        InvalidCommandClassError: execute 不存在或不是 coroutine function
    """
    if not isinstance(command, Command) or not inspect.iscoroutinefunction(command.execute):
        logger.error('指令不符合 Command 介面', extra={'command': name})
        raise InvalidCommandClassError(name)
    return command


@dataclass
class CommandRegistry:
    """指令註冊表。

    名稱一律轉為小寫；重複註冊時以最後一次為準。
    """

    _commands: dict[str, Command] = field(default_factory=lambda: {})

    def register(self, name: str, command: Command) -> None:
        """註冊指令。

        Args:
            name: 指令名稱
            command: 指令實例
        """
        key = name.lower()
        if key in self._commands:
            logger.debug('指令已存在，將被覆蓋', extra={'command': key})
        self._commands[key] = command
        logger.info('指令已註冊', extra={'command': key})

    def resolve(self, name: str) -> Command | None:
        """查詢指令，不存在時回傳 None。"""
        return self._commands.get(name)

    def list_commands(self) -> list[str]:
        """列出所有已註冊的指令名稱（快照）。"""
        return list(self._commands.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._commands

    def __len__(self) -> int:
        return len(self._commands)
