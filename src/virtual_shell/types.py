"""共用型別定義。

指令列解析結果與指令執行結果（成功輸出或帶標記的錯誤）。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from virtual_shell.errors import ErrorKind

RedirectionOperator = Literal['>', '>>']

# 可訂閱的事件名稱
ShellEventName = Literal['stdout', 'stderr']
SHELL_EVENTS: tuple[ShellEventName, ...] = ('stdout', 'stderr')


@dataclass(frozen=True)
class ParsedCommandLine:
    """單次 execute_command 解析出的指令列，不會被保存。"""

    command_input: str
    redirection_operator: str | None = None
    target_file: str | None = None

    @property
    def has_redirection(self) -> bool:
        return bool(self.redirection_operator and self.target_file)


@dataclass(frozen=True)
class TokenizedCommand:
    """斷詞後的指令名稱與參數。"""

    name: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True)
class CommandOutput:
    """指令成功執行的輸出。"""

    output: str = ''


@dataclass(frozen=True)
class CommandError:
    """指令執行失敗，附帶錯誤種類與訊息。"""

    kind: ErrorKind
    message: str


CommandResult = CommandOutput | CommandError
