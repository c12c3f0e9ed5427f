"""Sandbox 沙箱執行模組。

提供可抽換的沙箱執行器介面，預設以子行程 isolate 實作。
"""

from virtual_shell.sandbox.base import ExecResult, Sandbox, SandboxFunction
from virtual_shell.sandbox.isolate import IsolateSandbox

__all__ = [
    'ExecResult',
    'IsolateSandbox',
    'Sandbox',
    'SandboxFunction',
]
