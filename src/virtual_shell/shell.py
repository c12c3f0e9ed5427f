"""VirtualShell 核心模組。

在記憶體檔案系統上執行 shell 風格的指令列：解析、查詢指令、
執行 pre/post hook、處理輸出重導向，並將失敗轉為 stderr 訊息。
"""

from __future__ import annotations

import inspect
import logging
import os
import posixpath
from collections.abc import Callable, Mapping
from typing import Any

from virtual_shell import interpreter
from virtual_shell.commands import BUILTIN_COMMANDS
from virtual_shell.config import ShellConfig
from virtual_shell.errors import (
    ERR_UNKNOWN,
    SHELL_NAMESPACE,
    ErrorKind,
    InvalidCommandClassError,
    ShellError,
    command_not_found,
    invalid_operator,
    no_command,
    no_such_directory,
    not_a_directory,
    permission_denied,
)
from virtual_shell.filesystem.bridge import VirtualFilesystemBridge
from virtual_shell.hooks import PostHookPipeline, PreHookPipeline
from virtual_shell.registry import CommandFactory, CommandRegistry, validate_command
from virtual_shell.sandbox.isolate import IsolateSandbox
from virtual_shell.types import SHELL_EVENTS, CommandError

logger = logging.getLogger(__name__)

EventListener = Callable[[str], Any]


class VirtualShell:
    """完全虛擬化的類 Unix shell。

    同一個 shell 實例不支援並行執行多個指令列：目前工作目錄與檔案系統
    是沒有鎖保護的共享狀態。需要並行時請為每個 session 建立各自的 shell。

    Attributes:
        config: 建構時的配置
        current_directory: 目前工作目錄（只有 change_directory 會修改）
        user: 使用者識別字串
        environment: 唯讀的環境變數
        fs: 檔案系統橋接器
        registry: 指令註冊表
        pre_hook: 指令執行前的 hook
        post_hook: 指令執行後的 hook
        sandbox: 沙箱執行器
    """

    def __init__(
        self,
        config: ShellConfig | None = None,
        *,
        commands: Mapping[str, CommandFactory] | None = None,
    ) -> None:
        """建立 shell。

        Args:
            config: shell 配置（預設為空的 volume、'/'、'guest'）
            commands: 指令名稱到指令工廠的對應（預設為內建指令）

        Raises:
            InvalidCommandClassError: 有指令不符合 Command 介面
            ValueError: serialized_volume 無法解析
        """
        self.config = config or ShellConfig()
        self.current_directory = self.config.current_directory
        self.user = self.config.user
        self.environment = self.config.environment
        self.fs = (
            VirtualFilesystemBridge.from_serialized(self.config.serialized_volume)
            if self.config.serialized_volume
            else VirtualFilesystemBridge()
        )
        self.registry = CommandRegistry()
        self.pre_hook = PreHookPipeline()
        self.post_hook = PostHookPipeline()
        self.sandbox = IsolateSandbox(
            self.fs,
            environment=self.environment,
            working_directory=lambda: self.current_directory,
        )
        self._listeners: dict[str, list[EventListener]] = {event: [] for event in SHELL_EVENTS}

        self._register_commands(BUILTIN_COMMANDS if commands is None else commands)
        logger.info(
            'shell 已建立',
            extra={'user': self.user, 'cwd': self.current_directory, 'commands': self.list_builtin_commands()},
        )

    def _register_commands(self, commands: Mapping[str, CommandFactory]) -> None:
        for name, factory in commands.items():
            try:
                command = factory(self)
            except TypeError as exc:
                raise InvalidCommandClassError(name) from exc
            self.registry.register(name, validate_command(name, command))

    # -----------------------------------------------------------------
    # 指令執行
    # -----------------------------------------------------------------

    async def execute_command(self, line: str) -> str:
        """執行一行指令。

        不會拋出例外：所有失敗都轉為加上命名空間前綴的 stderr 訊息。
        成功時回傳指令原始輸出；有重導向時輸出寫入檔案並回傳空的 stdout 訊息。

        Args:
            line: 原始指令列

        Returns:
            指令輸出或錯誤訊息
        """
        if interpreter.is_invalid_command(line):
            return await self._stderr(no_command(SHELL_NAMESPACE))

        parsed = interpreter.parse(line)
        try:
            tokens = interpreter.tokenize(parsed.command_input)
        except ValueError as exc:
            return await self._stderr(str(exc) or ERR_UNKNOWN)

        if not tokens.name:
            return await self._stderr(no_command(SHELL_NAMESPACE))

        command = self.registry.resolve(tokens.name)
        if command is None:
            return await self._stderr(command_not_found(tokens.name))

        args = list(tokens.args)
        logger.debug('執行指令', extra={'command': tokens.name, 'args': args})
        try:
            await self.pre_hook.run(tokens.name, args)
            result = await command.execute(list(args))
            if isinstance(result, CommandError):
                logger.debug('指令失敗', extra={'command': tokens.name, 'kind': result.kind.value})
                return await self._stderr(result.message or ERR_UNKNOWN)
            await self.post_hook.run(tokens.name, args, result.output)
        except Exception as exc:
            logger.debug('指令執行時發生例外', extra={'command': tokens.name, 'error': repr(exc)})
            return await self._stderr(_error_message(exc))

        if parsed.has_redirection:
            return await self._redirect(
                result.output,
                parsed.redirection_operator or '',
                parsed.target_file or '',
                tokens.name,
            )
        return await self._emit('stdout', result.output)

    async def _redirect(self, output: str, operator: str, target_file: str, command_name: str) -> str:
        """將指令輸出（加上換行）寫入或附加到目標檔案。"""
        file_path = self.fs.resolve(self.current_directory, target_file)

        if not await self._is_writable(file_path):
            logger.warning('重導向目標無法寫入', extra={'path': file_path})
            return await self._stderr(permission_denied(file_path))

        try:
            if operator == '>':
                await self.fs.write_file(file_path, f'{output}\n')
            elif operator == '>>':
                await self.fs.append_file(file_path, f'{output}\n')
            else:
                return await self._stderr(invalid_operator(operator))
        except OSError as exc:
            return await self._stderr(f'{command_name}: {exc.strerror or ERR_UNKNOWN}')
        return await self._stdout('')

    async def _is_writable(self, file_path: str) -> bool:
        """重導向目標存在時必須是可寫入的檔案；不存在時上層目錄必須可寫入。"""
        try:
            stats = await self.fs.lstat(file_path)
        except FileNotFoundError:
            parent = posixpath.dirname(file_path)
            try:
                parent_stats = await self.fs.lstat(parent)
                await self.fs.access(parent, os.W_OK)
            except OSError:
                return False
            return parent_stats.is_directory()
        except OSError:
            return False

        if stats.is_directory():
            return False
        try:
            await self.fs.access(file_path, os.W_OK)
        except OSError:
            return False
        return True

    # -----------------------------------------------------------------
    # 工作目錄
    # -----------------------------------------------------------------

    async def change_directory(self, path: str) -> str:
        """切換工作目錄。

        Args:
            path: 絕對或相對路徑

        Returns:
            新的工作目錄

        Raises:
            ShellError: 目標不是目錄（NOT_A_DIRECTORY）或不存在（NO_SUCH_DIRECTORY）；
                失敗時工作目錄不變
        """
        target = self.fs.resolve(self.current_directory, path)
        try:
            stats = await self.fs.lstat(target)
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise ShellError(ErrorKind.NO_SUCH_DIRECTORY, no_such_directory(path)) from exc
        if not stats.is_directory():
            raise ShellError(ErrorKind.NOT_A_DIRECTORY, not_a_directory(path))

        self.current_directory = target
        logger.debug('工作目錄已切換', extra={'cwd': target})
        return target

    # -----------------------------------------------------------------
    # 指令與 volume
    # -----------------------------------------------------------------

    def list_builtin_commands(self) -> list[str]:
        """列出已註冊的指令名稱。"""
        return self.registry.list_commands()

    def serialize_volume(self) -> str:
        """將整個檔案系統序列化為字串。"""
        return self.fs.serialize()

    def restore(self, serialized_volume: str) -> None:
        """以快照取代目前的檔案系統。

        Raises:
            ValueError: 快照無法解析（此時保留原本的檔案系統）
        """
        self.fs.restore(serialized_volume)

    def close(self) -> None:
        """釋放 shell 的 volume。"""
        self.fs.release()

    # -----------------------------------------------------------------
    # 事件
    # -----------------------------------------------------------------

    def on(self, event: str, listener: EventListener) -> None:
        """訂閱 'stdout' 或 'stderr' 事件。

        Raises:
            ValueError: 未知的事件名稱
        """
        self._listeners_for(event).append(listener)

    def off(self, event: str, listener: EventListener) -> None:
        """取消訂閱；監聽器不存在時不做任何事。"""
        listeners = self._listeners_for(event)
        if listener in listeners:
            listeners.remove(listener)

    def _listeners_for(self, event: str) -> list[EventListener]:
        if event not in self._listeners:
            raise ValueError(f'未知的事件: {event}')
        return self._listeners[event]

    async def _stdout(self, message: str) -> str:
        return await self._emit('stdout', f'{SHELL_NAMESPACE}: {message}')

    async def _stderr(self, message: str) -> str:
        return await self._emit('stderr', f'{SHELL_NAMESPACE}: {message}')

    async def _emit(self, event: str, message: str) -> str:
        for listener in list(self._listeners[event]):
            try:
                result = listener(message)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception('事件監聽器執行失敗', extra={'event': event})
        return message


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, ShellError):
        return exc.message or ERR_UNKNOWN
    return str(exc) or ERR_UNKNOWN
