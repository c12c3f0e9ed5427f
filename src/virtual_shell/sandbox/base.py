"""Sandbox 基底類別與共用型別。

定義沙箱執行器的抽象介面：在隔離、受資源限制的環境中執行
呼叫端提供的函數，並只透過明確列舉的橋接介面存取 shell 的檔案系統。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any, TypedDict

from virtual_shell.config import DEFAULT_SANDBOX_MEMORY_LIMIT_MB, DEFAULT_SANDBOX_TIMEOUT_MS

# =============================================================================
# 回傳型別
# =============================================================================


class ExecResult(TypedDict):
    """沙箱執行結果，每次呼叫只產生一次且必定完整。"""

    stdout: str
    stderr: str


SandboxFunction = Callable[..., Any] | str


# =============================================================================
# Sandbox ABC
# =============================================================================


class Sandbox(ABC):
    """沙箱執行器抽象介面。

    職責範圍：
    - 配置具記憶體上限的隔離執行環境，並在任何結束路徑上釋放
    - 限制可觸及的介面：console、檔案系統允許清單、環境變數副本
    - 逾時與腳本錯誤以 stderr 文字回傳，而非拋出例外

    不負責：
    - 重試（失敗只回報一次）
    - 跨呼叫的快取或共享狀態
    """

    @abstractmethod
    async def run(
        self,
        func: SandboxFunction,
        params: Mapping[str, Any] | None = None,
        timeout_ms: int = DEFAULT_SANDBOX_TIMEOUT_MS,
        memory_limit_mb: int = DEFAULT_SANDBOX_MEMORY_LIMIT_MB,
    ) -> ExecResult:
        """在沙箱內執行函數。

        Args:
            func: 要執行的函數（或只定義一個函數的原始碼），會以 params 呼叫
            params: 傳入函數的參數，必須可 JSON 序列化（深層複製）
            timeout_ms: 執行逾時（毫秒）
            memory_limit_mb: 記憶體上限（MB）

        Returns:
            累積的 stdout 與 stderr

        Raises:
            SandboxAllocationError: 無法配置 isolate
            ValueError: 函數或參數無法傳入沙箱
        """
        ...
