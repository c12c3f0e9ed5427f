"""Filesystem 虛擬檔案系統模組。

提供記憶體內的 volume 與供 shell、沙箱使用的非同步橋接層。
"""

from virtual_shell.filesystem.bridge import VirtualFilesystemBridge
from virtual_shell.filesystem.volume import FileStat, Volume

__all__ = [
    'FileStat',
    'VirtualFilesystemBridge',
    'Volume',
]
