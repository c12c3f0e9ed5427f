"""IsolateSandbox — 以子行程作為 isolate 的沙箱執行器。

每次呼叫都啟動一個獨立的子行程（spawn），設定記憶體上限後執行函數。
子行程對檔案系統的每個呼叫都經由 Pipe 送回父行程，
由父行程在允許清單內轉交給 VirtualFilesystemBridge 執行。
"""

from __future__ import annotations

import ast
import asyncio
import inspect
import json
import logging
import multiprocessing
import textwrap
from collections.abc import Callable, Mapping
from multiprocessing.connection import Connection
from multiprocessing.process import BaseProcess
from typing import Any

from virtual_shell.config import DEFAULT_SANDBOX_MEMORY_LIMIT_MB, DEFAULT_SANDBOX_TIMEOUT_MS
from virtual_shell.errors import SandboxAllocationError
from virtual_shell.filesystem.bridge import VirtualFilesystemBridge
from virtual_shell.sandbox.base import ExecResult, Sandbox, SandboxFunction
from virtual_shell.sandbox.worker import ALLOWED_FS_METHODS, TIMEOUT_MESSAGE, run_isolate

logger = logging.getLogger(__name__)

# 子行程啟動（import、設定環境）的時間上限，不計入腳本逾時
STARTUP_TIMEOUT_S = 30.0

# 子行程自行計時逾時；父行程在此寬限後強制終止
KILL_GRACE_S = 0.5

_POLL_INTERVAL_S = 0.05

# copy_file 的兩個參數都是路徑，其餘方法只有第一個
_PATH_ARG_COUNT: dict[str, int] = {'copy_file': 2}

# 可從物件走回 worker 模組全域（進而取得 os）的內省屬性
_BLOCKED_ATTRIBUTES = frozenset({
    'ag_code',
    'ag_frame',
    'cr_code',
    'cr_frame',
    'f_back',
    'f_builtins',
    'f_code',
    'f_globals',
    'f_locals',
    'format',
    'format_map',
    'gi_code',
    'gi_frame',
    'tb_frame',
    'tb_next',
})


def _check_restricted(module: ast.Module) -> None:
    """拒絕可繞過沙箱全域限制的語法。

    底線開頭的屬性（__globals__、__class__、__subclasses__ 等）、
    dunder 名稱（__builtins__ 等）以及 frame 內省屬性都不允許。

    Raises:
        ValueError: 原始碼使用了受限的屬性或名稱
    """
    for node in ast.walk(module):
        if isinstance(node, ast.Attribute):
            if node.attr.startswith('_') or node.attr in _BLOCKED_ATTRIBUTES:
                raise ValueError(f'沙箱不允許存取屬性: {node.attr}')
        elif isinstance(node, ast.Name) and node.id.startswith('__'):
            raise ValueError(f'沙箱不允許使用名稱: {node.id}')


def function_source(func: SandboxFunction) -> tuple[str, str]:
    """取得函數的原始碼與名稱。

    裝飾器會被移除，因為沙箱內沒有裝飾器的定義。

    Raises:
        ValueError: 無法取得原始碼、是 lambda、原始碼未剛好定義一個函數，
            或使用了受限的屬性或名稱
    """
    if isinstance(func, str):
        source = textwrap.dedent(func)
    else:
        if getattr(func, '__name__', '') == '<lambda>':
            raise ValueError('沙箱不支援 lambda，請使用 def 定義函數')
        try:
            source = textwrap.dedent(inspect.getsource(func))
        except (OSError, TypeError) as exc:
            raise ValueError(f'無法取得函數原始碼: {func!r}') from exc

    try:
        module = ast.parse(source)
    except SyntaxError as exc:
        raise ValueError(f'函數原始碼語法錯誤: {exc.msg}') from exc

    functions = [node for node in module.body if isinstance(node, ast.FunctionDef)]
    if len(functions) != 1 or len(module.body) != 1:
        raise ValueError('原始碼必須剛好定義一個函數')

    node = functions[0]
    node.decorator_list = []
    _check_restricted(module)
    return ast.unparse(node), node.name


class IsolateSandbox(Sandbox):
    """子行程 isolate 沙箱。

    Attributes:
        fs: 沙箱檔案系統呼叫所使用的 bridge
        environment: 複製進沙箱的環境變數（只保留字串值）
    """

    def __init__(
        self,
        fs: VirtualFilesystemBridge,
        environment: Mapping[str, Any] | None = None,
        working_directory: Callable[[], str] | None = None,
    ) -> None:
        self.fs = fs
        self.environment = dict(environment or {})
        self._working_directory = working_directory or (lambda: '/')
        self._context = multiprocessing.get_context('spawn')
        self._active = 0

    @property
    def active_isolates(self) -> int:
        """目前尚未釋放的 isolate 數量。"""
        return self._active

    async def run(
        self,
        func: SandboxFunction,
        params: Mapping[str, Any] | None = None,
        timeout_ms: int = DEFAULT_SANDBOX_TIMEOUT_MS,
        memory_limit_mb: int = DEFAULT_SANDBOX_MEMORY_LIMIT_MB,
    ) -> ExecResult:
        """在新的 isolate 中執行函數。"""
        source, func_name = function_source(func)
        try:
            params_json = json.dumps(dict(params or {}))
        except (TypeError, ValueError) as exc:
            raise ValueError(f'參數無法傳入沙箱: {exc}') from exc

        env = {key: value for key, value in self.environment.items() if isinstance(value, str)}
        parent_conn, child_conn = self._context.Pipe()
        process = self._context.Process(
            target=run_isolate,
            args=(child_conn, source, func_name, params_json, env, timeout_ms, memory_limit_mb),
            daemon=True,
        )

        try:
            process.start()
        except OSError as exc:
            parent_conn.close()
            child_conn.close()
            logger.error('無法配置 isolate', extra={'error': str(exc)})
            raise SandboxAllocationError(f'無法配置 isolate: {exc}') from exc
        child_conn.close()
        self._active += 1
        logger.debug(
            'isolate 已啟動',
            extra={'function': func_name, 'timeout_ms': timeout_ms, 'memory_limit_mb': memory_limit_mb},
        )

        stdout: list[str] = []
        stderr: list[str] = []
        try:
            await self._serve(process, parent_conn, timeout_ms, stdout, stderr)
        finally:
            await self._dispose(process, parent_conn)

        return ExecResult(stdout=''.join(stdout).strip(), stderr=''.join(stderr).strip())

    async def _serve(
        self,
        process: BaseProcess,
        conn: Connection,
        timeout_ms: int,
        stdout: list[str],
        stderr: list[str],
    ) -> None:
        """處理子行程送來的訊息，直到執行結束、逾時或子行程消失。"""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + STARTUP_TIMEOUT_S
        started = False

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning('isolate 執行逾時，強制終止', extra={'timeout_ms': timeout_ms})
                stderr.append(TIMEOUT_MESSAGE)
                return

            has_message = await asyncio.to_thread(conn.poll, min(remaining, _POLL_INTERVAL_S))
            if not has_message:
                if not process.is_alive() and not conn.poll():
                    stderr.append(f'isolate exited unexpectedly (exit code {process.exitcode})')
                    return
                continue

            try:
                message = conn.recv()
            except EOFError:
                stderr.append(f'isolate exited unexpectedly (exit code {process.exitcode})')
                return

            kind = message[0]
            if kind == 'stdout':
                stdout.append(message[1])
            elif kind == 'stderr':
                stderr.append(message[1])
            elif kind == 'ready' and not started:
                # 只在第一次收到時開始計時，重複的 ready 不會延長期限
                started = True
                deadline = loop.time() + timeout_ms / 1000 + KILL_GRACE_S
            elif kind == 'fs':
                conn.send(await self._call_fs(message[1], message[2]))
            elif kind == 'error':
                stderr.append(message[1])
                return
            elif kind == 'done':
                return

    async def _call_fs(self, method: str, args: tuple[Any, ...]) -> tuple[Any, ...]:
        """執行沙箱送來的檔案系統呼叫，錯誤以資料形式回傳。"""
        if method not in ALLOWED_FS_METHODS:
            logger.warning('沙箱嘗試呼叫未允許的檔案系統方法', extra={'method': method})
            return ('err', 'PermissionError', f'{method}: operation not permitted')

        path_count = _PATH_ARG_COUNT.get(method, 1)
        cwd = self._working_directory()
        resolved = [
            self.fs.resolve(cwd, arg) if index < path_count and isinstance(arg, str) else arg
            for index, arg in enumerate(args)
        ]
        try:
            value = await getattr(self.fs, method)(*resolved)
        except Exception as exc:
            return ('err', type(exc).__name__, str(exc))
        return ('ok', value)

    async def _dispose(self, process: BaseProcess, conn: Connection) -> None:
        """釋放 isolate，在所有結束路徑上都會執行。"""
        if process.is_alive():
            process.kill()
        await asyncio.to_thread(process.join, 5)
        conn.close()
        self._active -= 1
        logger.debug('isolate 已釋放', extra={'exit_code': process.exitcode})
