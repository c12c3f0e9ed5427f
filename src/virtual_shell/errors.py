"""錯誤型別與錯誤訊息模組。

定義 shell 的錯誤種類、標準錯誤訊息模板，以及建構期與執行期的例外類別。
"""

from __future__ import annotations

from enum import Enum

# 所有終端訊息共用的命名空間前綴
SHELL_NAMESPACE = 'bash'


class ErrorKind(Enum):
    """錯誤種類。

    除 INVALID_COMMAND_CLASS 外皆為執行期錯誤，不會使 shell 失效。
    """

    NO_COMMAND = 'no_command'
    COMMAND_NOT_FOUND = 'command_not_found'
    PERMISSION_DENIED = 'permission_denied'
    NOT_A_DIRECTORY = 'not_a_directory'
    NO_SUCH_DIRECTORY = 'no_such_directory'
    INVALID_OPERATOR = 'invalid_operator'
    MISSING_OPERAND = 'missing_operand'
    INVALID_COMMAND_CLASS = 'invalid_command_class'
    UNKNOWN = 'unknown'


# =============================================================================
# 錯誤訊息模板
# =============================================================================

ERR_UNKNOWN = 'An unknown error occurred'


def no_command(command: str) -> str:
    return f'{command}: command not provided'


def command_not_found(command: str) -> str:
    return f'{command}: command not found'


def permission_denied(file_path: str) -> str:
    return f'{file_path}: permission denied'


def not_a_directory(path: str, command: str = 'cd') -> str:
    return f'{command}: {path}: not a directory'


def no_such_directory(path: str, command: str = 'cd') -> str:
    return f'{command}: {path}: no such file or directory'


def invalid_operator(operator: str) -> str:
    return f'{operator}: invalid operator'


def missing_operand(command: str = 'cd') -> str:
    return f'{command}: missing operand'


def invalid_command_class(name: str) -> str:
    return f'{name}: invalid command class'


def mkdir_create_failed(directory: str, reason: str) -> str:
    return f"mkdir: cannot create directory '{directory}': {reason}"


# =============================================================================
# 例外類別
# =============================================================================


class ShellError(Exception):
    """帶有錯誤種類的 shell 錯誤。

    Attributes:
        kind: 錯誤種類
        message: 未加命名空間前綴的錯誤訊息
    """

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class InvalidCommandClassError(ShellError):
    """建構 shell 時發現不符合 Command 介面的指令（致命錯誤）。"""

    def __init__(self, name: str) -> None:
        super().__init__(ErrorKind.INVALID_COMMAND_CLASS, invalid_command_class(name))


class SandboxAllocationError(ShellError):
    """無法配置 isolate（資源不足），與腳本層級的錯誤不同。"""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.UNKNOWN, message)


class VolumeReleasedError(RuntimeError):
    """對已被 restore 取代或已釋放的 volume 進行操作。"""
