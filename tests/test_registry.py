"""Command Registry 測試模組。

涵蓋：
- Rule: 註冊表應以小寫名稱保存指令，後註冊者覆蓋
- Rule: 建構 shell 時應拒絕不符合 Command 介面的指令
"""

from __future__ import annotations

from typing import Any

import allure
import pytest

from virtual_shell import (
    BUILTIN_COMMANDS,
    BaseCommand,
    CommandOutput,
    CommandRegistry,
    CommandResult,
    ErrorKind,
    InvalidCommandClassError,
    VirtualShell,
)
from virtual_shell.registry import validate_command

# =============================================================================
# Mock Helpers
# =============================================================================


class _StaticCommand:
    """回傳固定輸出的指令。"""

    def __init__(self, output: str) -> None:
        self.output = output

    async def execute(self, args: list[str]) -> CommandResult:
        return CommandOutput(self.output)


class _NoArgCommand:
    """建構子不接受 shell。"""

    def __init__(self) -> None:
        pass

    async def execute(self, args: list[str]) -> CommandResult:
        return CommandOutput()


class _SyncCommand:
    """execute 不是 coroutine function。"""

    def execute(self, args: list[str]) -> str:
        return ''


class _WhoamiCommand(BaseCommand):
    async def execute(self, args: list[str]) -> CommandResult:
        return self.ok(self.shell.user)


# =============================================================================
# Rule: 註冊表應以小寫名稱保存指令，後註冊者覆蓋
# =============================================================================


@allure.feature('指令註冊表')
@allure.story('註冊表應以小寫名稱保存指令，後註冊者覆蓋')
class TestCommandRegistry:
    """測試 CommandRegistry。"""

    @allure.title('名稱轉為小寫')
    def test_register_lowercases_name(self) -> None:
        registry = CommandRegistry()
        command = _StaticCommand('x')

        registry.register('Hello', command)

        assert registry.resolve('hello') is command
        assert 'hello' in registry
        assert registry.list_commands() == ['hello']

    @allure.title('重複註冊以最後一次為準')
    def test_last_registration_wins(self) -> None:
        registry = CommandRegistry()
        first, second = _StaticCommand('1'), _StaticCommand('2')

        registry.register('cmd', first)
        registry.register('CMD', second)

        assert registry.resolve('cmd') is second
        assert len(registry) == 1

    @allure.title('查詢不存在的指令回傳 None')
    def test_resolve_missing(self) -> None:
        assert CommandRegistry().resolve('nope') is None

    @allure.title('list_commands 回傳快照而非即時檢視')
    def test_list_is_snapshot(self) -> None:
        registry = CommandRegistry()
        registry.register('a', _StaticCommand('a'))

        names = registry.list_commands()
        registry.register('b', _StaticCommand('b'))

        assert names == ['a']


# =============================================================================
# Rule: 建構 shell 時應拒絕不符合 Command 介面的指令
# =============================================================================


@allure.feature('指令註冊表')
@allure.story('建構 shell 時應拒絕不符合 Command 介面的指令')
class TestCommandValidation:
    """測試指令驗證與注入。"""

    @allure.title('沒有 execute 的物件不是指令')
    def test_object_without_execute(self) -> None:
        with pytest.raises(InvalidCommandClassError, match='bad: invalid command class'):
            validate_command('bad', object())

    @allure.title('同步的 execute 不符合介面')
    def test_sync_execute_rejected(self) -> None:
        with pytest.raises(InvalidCommandClassError) as exc_info:
            validate_command('sync', _SyncCommand())

        assert exc_info.value.kind is ErrorKind.INVALID_COMMAND_CLASS

    @allure.title('無效的指令使 shell 建構失敗')
    def test_invalid_command_aborts_construction(self) -> None:
        commands: dict[str, Any] = {'echo': BUILTIN_COMMANDS['echo'], 'broken': lambda shell: object()}

        with pytest.raises(InvalidCommandClassError, match='broken'):
            VirtualShell(commands=commands)

    @allure.title('無法以 shell 建構的工廠也是無效指令')
    def test_factory_with_wrong_signature(self) -> None:
        with pytest.raises(InvalidCommandClassError):
            VirtualShell(commands={'noarg': _NoArgCommand})

    @allure.title('注入自訂指令')
    async def test_custom_command_injection(self) -> None:
        """Scenario: host 注入指令。

        Given host 提供只有 whoami 的指令對應表
        When 建立 shell 並執行 whoami
        Then 回傳使用者名稱
        And 內建指令不存在
        """
        shell = VirtualShell(commands={'WhoAmI': _WhoamiCommand})

        assert shell.list_builtin_commands() == ['whoami']
        assert await shell.execute_command('whoami') == 'guest'
        assert await shell.execute_command('echo hi') == 'bash: echo: command not found'

    @allure.title('預設註冊所有內建指令')
    def test_builtin_commands_registered(self) -> None:
        shell = VirtualShell()

        assert set(shell.list_builtin_commands()) == {'cat', 'cd', 'cp', 'echo', 'mkdir', 'rm', 'touch'}
