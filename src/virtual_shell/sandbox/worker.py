"""Isolate 內部執行的程式碼。

此模組在子行程中載入：設定記憶體上限、建立受限的全域環境，
編譯並執行呼叫端提供的函數。console 輸出與檔案系統呼叫
都透過 Pipe 傳回父行程，子行程本身不會碰到 shell 的 volume。

Pipe 訊息格式（子 → 父）：
    ('ready',)                       環境建立完成，開始計時
    ('stdout', text) / ('stderr', text)
    ('fs', method, args)             檔案系統呼叫，等待 ('ok', value) 或 ('err', type, message)
    ('done',) / ('error', message)   執行結束
"""

from __future__ import annotations

import builtins
import json
import os
import signal
from multiprocessing.connection import Connection
from types import SimpleNamespace
from typing import Any

# 沙箱內可呼叫的檔案系統方法（對應 bridge 的方法名稱）
ALLOWED_FS_METHODS: tuple[str, ...] = (
    'read_file',
    'write_file',
    'stat',
    'lstat',
    'readdir',
    'mkdir',
    'copy_file',
    'access',
)

TIMEOUT_MESSAGE = 'Script execution timed out.'
MEMORY_MESSAGE = 'MemoryError: isolate memory limit exceeded'

_ALLOWED_BUILTINS: tuple[str, ...] = (
    'abs',
    'all',
    'any',
    'bool',
    'bytearray',
    'bytes',
    'callable',
    'chr',
    'dict',
    'divmod',
    'enumerate',
    'filter',
    'float',
    'format',
    'frozenset',
    'hash',
    'hex',
    'int',
    'isinstance',
    'issubclass',
    'iter',
    'len',
    'list',
    'map',
    'max',
    'min',
    'next',
    'object',
    'ord',
    'pow',
    'range',
    'repr',
    'reversed',
    'round',
    'set',
    'slice',
    'sorted',
    'str',
    'sum',
    'tuple',
    'zip',
    'Exception',
    'ArithmeticError',
    'AssertionError',
    'FileExistsError',
    'FileNotFoundError',
    'IndexError',
    'IsADirectoryError',
    'KeyError',
    'LookupError',
    'MemoryError',
    'NameError',
    'NotADirectoryError',
    'OSError',
    'PermissionError',
    'RuntimeError',
    'StopIteration',
    'TypeError',
    'ValueError',
    'ZeroDivisionError',
    '__build_class__',
)

# 父行程回傳的錯誤型別名稱 → 沙箱內拋出的例外
_FS_ERRORS: dict[str, type[OSError]] = {
    'FileExistsError': FileExistsError,
    'FileNotFoundError': FileNotFoundError,
    'IsADirectoryError': IsADirectoryError,
    'NotADirectoryError': NotADirectoryError,
    'PermissionError': PermissionError,
}


class ScriptTimeout(BaseException):
    """腳本超過執行時間。

    繼承 BaseException，避免被腳本內的 except Exception 攔截。
    """


class _Channel:
    """子行程端的 Pipe 包裝。"""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def send(self, *message: Any) -> None:
        self._conn.send(message)

    def call_fs(self, method: str, args: tuple[Any, ...]) -> Any:
        self._conn.send(('fs', method, args))
        reply = self._conn.recv()
        if reply[0] == 'ok':
            return reply[1]
        _, type_name, message = reply
        raise _FS_ERRORS.get(type_name, OSError)(message)


class _Console:
    """沙箱內的 console：log/error 只會累積到父行程的輸出。"""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    def log(self, *args: Any) -> None:
        self._channel.send('stdout', ' '.join(str(arg) for arg in args) + '\n')

    def error(self, *args: Any) -> None:
        self._channel.send('stderr', ' '.join(str(arg) for arg in args) + '\n')


class _FsProxy:
    """沙箱內的 fs 物件，只暴露 ALLOWED_FS_METHODS。"""

    def __init__(self, channel: _Channel) -> None:
        for method in ALLOWED_FS_METHODS:
            setattr(self, method, self._bind(channel, method))

    @staticmethod
    def _bind(channel: _Channel, method: str) -> Any:
        def _call(*args: Any) -> Any:
            return channel.call_fs(method, args)

        _call.__name__ = method
        return _call


def _safe_builtins(console: _Console) -> dict[str, Any]:
    safe = {name: getattr(builtins, name) for name in _ALLOWED_BUILTINS if hasattr(builtins, name)}
    safe['print'] = console.log
    return safe


def _current_address_space() -> int:
    """目前行程的虛擬記憶體大小（bytes），無法取得時回傳 0。"""
    try:
        with open('/proc/self/statm', encoding='ascii') as f:
            pages = int(f.read().split()[0])
    except (OSError, ValueError, IndexError):
        return 0
    return pages * os.sysconf('SC_PAGE_SIZE')


def _limit_memory(memory_limit_mb: int) -> None:
    """在目前位址空間之上再允許 memory_limit_mb 的配置。"""
    if os.name != 'posix':
        return
    import resource

    limit = _current_address_space() + memory_limit_mb * 1024 * 1024
    _, hard = resource.getrlimit(resource.RLIMIT_AS)
    if hard != resource.RLIM_INFINITY:
        limit = min(limit, hard)
    resource.setrlimit(resource.RLIMIT_AS, (limit, hard))


def _raise_timeout(signum: int, frame: Any) -> None:
    raise ScriptTimeout


def run_isolate(
    conn: Connection,
    source: str,
    func_name: str,
    params_json: str,
    env: dict[str, str],
    timeout_ms: int,
    memory_limit_mb: int,
) -> None:
    """子行程進入點。"""
    channel = _Channel(conn)
    # 子行程不保留宿主的環境變數，沙箱只看得到 process.env
    os.environ.clear()
    try:
        _limit_memory(memory_limit_mb)
        console = _Console(channel)
        sandbox_globals: dict[str, Any] = {
            '__builtins__': _safe_builtins(console),
            '__name__': '__sandbox__',
            'console': console,
            'fs': _FsProxy(channel),
            'process': SimpleNamespace(argv=[], env=dict(env)),
            'params': json.loads(params_json),
        }
        code = compile(f'{source}\n\n{func_name}(params)\n', '<sandbox>', 'exec')
    except SyntaxError as exc:
        channel.send('error', f'SyntaxError: {exc.msg}')
        conn.close()
        return

    channel.send('ready')
    use_alarm = hasattr(signal, 'setitimer')
    if use_alarm:
        signal.signal(signal.SIGALRM, _raise_timeout)
        signal.setitimer(signal.ITIMER_REAL, timeout_ms / 1000)
    try:
        try:
            exec(code, sandbox_globals)  # noqa: S102
        finally:
            if use_alarm:
                signal.setitimer(signal.ITIMER_REAL, 0)
    except ScriptTimeout:
        channel.send('error', TIMEOUT_MESSAGE)
    except MemoryError:
        channel.send('error', MEMORY_MESSAGE)
    except Exception as exc:
        channel.send('error', f'{type(exc).__name__}: {exc}')
    else:
        channel.send('done')
    finally:
        conn.close()
