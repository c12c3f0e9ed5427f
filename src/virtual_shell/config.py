"""Shell 配置模組。

集中管理 VirtualShell 建構時的選項，以及沙箱執行的預設資源上限。
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

# 預設配置
DEFAULT_CURRENT_DIRECTORY = '/'
DEFAULT_USER = 'guest'
DEFAULT_SANDBOX_TIMEOUT_MS = 1000
DEFAULT_SANDBOX_MEMORY_LIMIT_MB = 128


@dataclass(frozen=True)
class ShellConfig:
    """VirtualShell 配置。

    環境變數由呼叫端明確傳入，核心不會讀取宿主的 os.environ。

    Attributes:
        serialized_volume: 以 serialize_volume() 產生的檔案系統快照（可選）
        current_directory: 起始工作目錄（必須是絕對路徑）
        user: 使用者識別字串
        environment: 環境變數（建構後唯讀）
        sandbox_timeout_ms: 沙箱執行的預設逾時（毫秒）
        sandbox_memory_limit_mb: 沙箱執行的預設記憶體上限（MB）
    """

    serialized_volume: str | None = None
    current_directory: str = DEFAULT_CURRENT_DIRECTORY
    user: str = DEFAULT_USER
    environment: Mapping[str, str] = field(default_factory=lambda: {})
    sandbox_timeout_ms: int = DEFAULT_SANDBOX_TIMEOUT_MS
    sandbox_memory_limit_mb: int = DEFAULT_SANDBOX_MEMORY_LIMIT_MB

    def __post_init__(self) -> None:
        if not self.current_directory.startswith('/'):
            raise ValueError(f'current_directory 必須是絕對路徑: {self.current_directory}')
        if self.sandbox_timeout_ms <= 0:
            raise ValueError('sandbox_timeout_ms 必須大於 0')
        if self.sandbox_memory_limit_mb <= 0:
            raise ValueError('sandbox_memory_limit_mb 必須大於 0')
        # 複製一份並包成唯讀，避免外部修改影響 shell
        object.__setattr__(self, 'environment', MappingProxyType(dict(self.environment)))
