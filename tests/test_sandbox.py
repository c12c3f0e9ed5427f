"""IsolateSandbox 測試模組。

沙箱中執行的函數只能使用 console、fs、process 與 params 這些全域名稱，
因此下方的腳本函數不加型別註記，也不引用本模組的任何名稱。

涵蓋：
- Rule: console 輸出只會累積到回傳結果
- Rule: 檔案系統呼叫經由 bridge 並受允許清單限制
- Rule: 逾時與記憶體上限會終止 isolate
- Rule: 無法送進沙箱的輸入在呼叫前被拒絕
"""

from __future__ import annotations

import asyncio
import contextlib
import multiprocessing
import sys
import time
from unittest.mock import MagicMock

import allure
import pytest

from virtual_shell import CommandResult, ShellConfig, VirtualShell
from virtual_shell.commands import BaseCommand
from virtual_shell.sandbox.isolate import KILL_GRACE_S, function_source
from virtual_shell.sandbox.worker import TIMEOUT_MESSAGE

pytestmark = pytest.mark.isolate

# =============================================================================
# 沙箱腳本
# =============================================================================


def greet(params):
    console.log('hello', params['name'])  # noqa: F821
    console.log('second line')  # noqa: F821
    console.error('warned')  # noqa: F821


def copy_upper(params):
    text = fs.read_file(params['source'])  # noqa: F821
    fs.write_file(params['target'], text.upper())  # noqa: F821
    console.log(fs.readdir('/'))  # noqa: F821


def remove_file(params):
    fs.rm('/data.txt')  # noqa: F821


def open_host_file(params):
    open('/etc/passwd')  # noqa: F821


def import_module(params):
    import os  # noqa: F401


def read_environment(params):
    console.log(process.env['HOME'], len(process.argv))  # noqa: F821


def spin(params):
    while True:
        pass


def swallow_and_spin(params):
    try:
        while True:
            pass
    except Exception:
        console.log('caught')  # noqa: F821


def fail_after_output(params):
    console.log('before')  # noqa: F821
    raise ValueError('bad')


def allocate(params):
    buffer = bytearray(params['size'])
    console.log(len(buffer))  # noqa: F821


def catch_missing(params):
    try:
        fs.read_file('/missing.txt')  # noqa: F821
    except FileNotFoundError:
        console.log('missing')  # noqa: F821


def write_relative(params):
    fs.write_file('rel.txt', 'relative')  # noqa: F821


def read_worker_globals(params):
    console.log(fs.read_file.__globals__['os'].environ)  # noqa: F821


def climb_console_method(params):
    console.log(console.log.__func__)  # noqa: F821


def climb_generator_frame(params):
    def pause():
        yield

    console.log(pause().gi_frame)  # noqa: F821


def format_attribute_walk(params):
    console.log('{0.__globals__}'.format(fs.read_file))  # noqa: F821


def read_builtins(params):
    console.log(__builtins__)  # noqa: F821


class _ScriptCommand(BaseCommand):
    """在沙箱中執行 greet 並輸出其 stdout。"""

    async def execute(self, args: list[str]) -> CommandResult:
        result = await self.execute_function(greet, {'name': args[0] if args else 'nobody'})
        return self.ok(result['stdout'])


@pytest.fixture
def shell() -> VirtualShell:
    return VirtualShell(
        ShellConfig(environment={'HOME': '/home/guest', 'PATH': '/bin'}),
        commands={'script': _ScriptCommand},
    )


# =============================================================================
# Rule: console 輸出只會累積到回傳結果
# =============================================================================


@allure.feature('沙箱執行')
@allure.story('console 輸出只會累積到回傳結果')
class TestConsole:
    """測試 console.log 與 console.error。"""

    @allure.title('stdout 與 stderr 分開累積並去除頭尾空白')
    async def test_console_output(self, shell: VirtualShell) -> None:
        result = await shell.sandbox.run(greet, {'name': 'guest'})

        assert result == {'stdout': 'hello guest\nsecond line', 'stderr': 'warned'}

    @allure.title('接受原始碼字串')
    async def test_source_string(self, shell: VirtualShell) -> None:
        source = 'def double(params):\n    console.log(params["n"] * 2)\n'

        result = await shell.sandbox.run(source, {'n': 21})

        assert result['stdout'] == '42'

    @allure.title('例外訊息寫入 stderr，先前的 stdout 保留')
    async def test_error_keeps_stdout(self, shell: VirtualShell) -> None:
        result = await shell.sandbox.run(fail_after_output)

        assert result == {'stdout': 'before', 'stderr': 'ValueError: bad'}

    @allure.title('環境變數複製進沙箱，argv 為空')
    async def test_process_environment(self, shell: VirtualShell) -> None:
        result = await shell.sandbox.run(read_environment)

        assert result['stdout'] == '/home/guest 0'

    @allure.title('指令可透過 execute_function 使用沙箱')
    async def test_execute_function_from_command(self, shell: VirtualShell) -> None:
        assert await shell.execute_command('script alice') == 'hello alice\nsecond line'
        assert shell.sandbox.active_isolates == 0


# =============================================================================
# Rule: 檔案系統呼叫經由 bridge 並受允許清單限制
# =============================================================================


@allure.feature('沙箱執行')
@allure.story('檔案系統呼叫經由 bridge 並受允許清單限制')
class TestFilesystemAccess:
    """測試沙箱內的 fs。"""

    @allure.title('沙箱的讀寫反映在 shell 的檔案系統')
    async def test_read_write_through_bridge(self, shell: VirtualShell) -> None:
        await shell.fs.write_file('/data.txt', 'abc')

        result = await shell.sandbox.run(copy_upper, {'source': '/data.txt', 'target': '/upper.txt'})

        assert result['stderr'] == ''
        assert result['stdout'] == "['data.txt', 'upper.txt']"
        assert await shell.fs.read_file('/upper.txt') == 'ABC'

    @allure.title('相對路徑以 shell 的工作目錄解析')
    async def test_relative_paths(self, shell: VirtualShell) -> None:
        await shell.fs.mkdir('/work')
        await shell.change_directory('/work')

        await shell.sandbox.run(write_relative)

        assert await shell.fs.read_file('/work/rel.txt') == 'relative'

    @allure.title('檔案系統錯誤可在沙箱內攔截')
    async def test_filesystem_error_is_catchable(self, shell: VirtualShell) -> None:
        result = await shell.sandbox.run(catch_missing)

        assert result == {'stdout': 'missing', 'stderr': ''}

    @allure.title('不在允許清單的方法無法使用')
    async def test_disallowed_method(self, shell: VirtualShell) -> None:
        await shell.fs.write_file('/data.txt', 'abc')

        result = await shell.sandbox.run(remove_file)

        assert result['stderr'].startswith('AttributeError')
        assert await shell.fs.exists('/data.txt') is True

    @allure.title('沙箱內無法開啟宿主檔案或匯入模組')
    async def test_host_access_blocked(self, shell: VirtualShell) -> None:
        opened = await shell.sandbox.run(open_host_file)
        imported = await shell.sandbox.run(import_module)

        assert opened['stderr'].startswith('NameError')
        assert imported['stderr'].startswith('ImportError')

    @allure.title('透過內省屬性走回 worker 全域的函數被拒絕')
    @pytest.mark.parametrize(
        ('script', 'blocked'),
        [
            (read_worker_globals, '__globals__'),
            (climb_console_method, '__func__'),
            (climb_generator_frame, 'gi_frame'),
            (format_attribute_walk, 'format'),
        ],
    )
    async def test_introspection_escape_rejected(self, shell: VirtualShell, script: object, blocked: str) -> None:
        """Scenario: 沙箱函數嘗試取得 worker 模組的 os。

        Given 一個存取 __globals__、frame 或 str.format 屬性走訪的函數
        When 在沙箱中執行
        Then 在啟動 isolate 前就拋出 ValueError
        And 沒有任何 isolate 被配置
        """
        with pytest.raises(ValueError, match=f'沙箱不允許存取屬性: {blocked}'):
            await shell.sandbox.run(script)

        assert shell.sandbox.active_isolates == 0

    @allure.title('dunder 名稱被拒絕')
    async def test_dunder_name_rejected(self, shell: VirtualShell) -> None:
        with pytest.raises(ValueError, match='沙箱不允許使用名稱: __builtins__'):
            await shell.sandbox.run(read_builtins)

    @allure.title('原始碼字串同樣受到限制')
    def test_restricted_source_string(self) -> None:
        source = 'def peek(params):\n    console.log(fs.stat.__closure__)\n'

        with pytest.raises(ValueError, match='__closure__'):
            function_source(source)

    @allure.title('單一底線的區域名稱仍可使用')
    async def test_single_underscore_name_allowed(self, shell: VirtualShell) -> None:
        source = 'def repeat(params):\n    for _ in range(2):\n        console.log("x")\n'

        result = await shell.sandbox.run(source)

        assert result == {'stdout': 'x\nx', 'stderr': ''}


# =============================================================================
# Rule: 逾時與記憶體上限會終止 isolate
# =============================================================================


@allure.feature('沙箱執行')
@allure.story('逾時與記憶體上限會終止 isolate')
class TestResourceLimits:
    """測試逾時、記憶體上限與 isolate 釋放。"""

    @allure.title('無窮迴圈在逾時後終止')
    async def test_timeout(self, shell: VirtualShell) -> None:
        """Scenario: 腳本逾時。

        Given 一個不會結束的腳本
        When 以 50ms 逾時執行三次
        Then 每次 stderr 都是逾時訊息
        And 所有 isolate 都已釋放
        """
        started = time.monotonic()
        for _ in range(3):
            result = await shell.sandbox.run(spin, timeout_ms=50)
            assert result['stderr'] == 'Script execution timed out.'

        assert time.monotonic() - started < 30
        assert shell.sandbox.active_isolates == 0

    @allure.title('腳本無法以 except Exception 攔截逾時')
    async def test_timeout_not_catchable(self, shell: VirtualShell) -> None:
        result = await shell.sandbox.run(swallow_and_spin, timeout_ms=50)

        assert result == {'stdout': '', 'stderr': 'Script execution timed out.'}

    @allure.title('重複的 ready 訊息不會延長逾時期限')
    async def test_repeated_ready_does_not_extend_deadline(self, shell: VirtualShell) -> None:
        """Scenario: isolate 不斷送出 ready。

        Given 一個持續每 20ms 送出 ready 的 isolate
        When 以 50ms 逾時處理其訊息
        Then 在第一次 ready 後的逾時加寬限內回報逾時
        """
        parent_conn, child_conn = multiprocessing.Pipe()
        process = MagicMock()
        process.is_alive.return_value = True

        async def keep_sending_ready() -> None:
            while True:
                child_conn.send(('ready',))
                await asyncio.sleep(0.02)

        sender = asyncio.create_task(keep_sending_ready())
        stdout: list[str] = []
        stderr: list[str] = []
        started = time.monotonic()
        try:
            await shell.sandbox._serve(process, parent_conn, 50, stdout, stderr)
        finally:
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender
            parent_conn.close()
            child_conn.close()

        assert stderr == [TIMEOUT_MESSAGE]
        assert time.monotonic() - started < 0.05 + KILL_GRACE_S + 1.5

    @allure.title('超過記憶體上限時回報 MemoryError')
    @pytest.mark.skipif(not sys.platform.startswith('linux'), reason='需要 RLIMIT_AS')
    async def test_memory_limit(self, shell: VirtualShell) -> None:
        result = await shell.sandbox.run(allocate, {'size': 256 * 1024 * 1024}, memory_limit_mb=32)

        assert result['stderr'].startswith('MemoryError')
        assert shell.sandbox.active_isolates == 0

    @allure.title('上限內的配置正常完成')
    async def test_allocation_within_limit(self, shell: VirtualShell) -> None:
        result = await shell.sandbox.run(allocate, {'size': 1024}, memory_limit_mb=64)

        assert result == {'stdout': '1024', 'stderr': ''}


# =============================================================================
# Rule: 無法送進沙箱的輸入在呼叫前被拒絕
# =============================================================================


@allure.feature('沙箱執行')
@allure.story('無法送進沙箱的輸入在呼叫前被拒絕')
class TestInvalidInput:
    """測試輸入驗證。"""

    @allure.title('參數無法序列化')
    async def test_unserializable_params(self, shell: VirtualShell) -> None:
        with pytest.raises(ValueError, match='參數無法傳入沙箱'):
            await shell.sandbox.run(greet, {'name': object()})

        assert shell.sandbox.active_isolates == 0

    @allure.title('lambda 不被接受')
    async def test_lambda_rejected(self, shell: VirtualShell) -> None:
        with pytest.raises(ValueError, match='lambda'):
            await shell.sandbox.run(lambda params: None)

    @allure.title('原始碼語法錯誤')
    async def test_syntax_error(self, shell: VirtualShell) -> None:
        with pytest.raises(ValueError, match='語法錯誤'):
            await shell.sandbox.run('def broken(:\n    pass\n')
