"""Hook 管線模組。

在指令本體執行前後，依註冊順序逐一執行以指令名稱為鍵的回呼。
Hook 只產生副作用，不影響控制流程；hook 拋出的例外不在此攔截，
由 shell 視同指令失敗處理。
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

HookFunction = Callable[..., Any]


@dataclass
class HookPipeline:
    """依指令名稱分組的 hook 清單。"""

    _hooks: dict[str, list[HookFunction]] = field(default_factory=lambda: {})

    def register(self, command_name: str, hook: HookFunction) -> None:
        """將 hook 附加到指令的 hook 清單尾端。

        Args:
            command_name: 指令名稱
            hook: 同步或非同步的回呼
        """
        self._hooks.setdefault(command_name, []).append(hook)
        logger.debug('hook 已註冊', extra={'command': command_name, 'hook': getattr(hook, '__name__', repr(hook))})

    def hooks_for(self, command_name: str) -> list[HookFunction]:
        """取得指令的 hook 清單（副本）。"""
        return list(self._hooks.get(command_name, []))

    async def _run(self, command_name: str, *args: Any) -> None:
        for hook in self.hooks_for(command_name):
            # 每個 hook 都拿到自己的參數列表副本
            result = hook(*(list(arg) if isinstance(arg, list) else arg for arg in args))
            if inspect.isawaitable(result):
                await result


class PreHookPipeline(HookPipeline):
    """指令本體執行前的 hook。"""

    async def run(self, command_name: str, args: list[str]) -> None:
        """執行 pre-hook。"""
        await self._run(command_name, args)


class PostHookPipeline(HookPipeline):
    """指令本體成功執行後的 hook，可取得指令輸出。"""

    async def run(self, command_name: str, args: list[str], output: str) -> None:
        """執行 post-hook，hook 會收到參數與指令輸出。"""
        await self._run(command_name, args, output)
