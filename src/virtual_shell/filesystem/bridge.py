"""VirtualFilesystemBridge — shell 與記憶體 volume 之間的橋接層。

提供非同步的類 POSIX 檔案操作、相對於工作目錄的路徑解析，
以及整個 volume 的序列化與還原。
"""

from __future__ import annotations

import json
import logging
import os
import posixpath
import time

from virtual_shell.filesystem.volume import FileStat, Volume, normalize

logger = logging.getLogger(__name__)


class VirtualFilesystemBridge:
    """記憶體檔案系統橋接器。

    所有檔案操作都委派給目前的 Volume。restore() 會整個換掉 volume，
    先前取得的 volume 參照會被釋放，之後對其操作都會失敗。
    """

    def __init__(self, volume: Volume | None = None) -> None:
        self._volume = volume if volume is not None else Volume()

    @classmethod
    def from_serialized(cls, serialized: str) -> VirtualFilesystemBridge:
        """從 serialize() 的輸出建立 bridge。

        Raises:
            ValueError: 快照不是合法的 JSON 或格式不正確
        """
        return cls(Volume.from_json(json.loads(serialized)))

    @property
    def volume(self) -> Volume:
        """目前使用中的 volume。"""
        return self._volume

    # --- 路徑解析 ---

    @staticmethod
    def resolve(current_directory: str, path: str) -> str:
        """以 POSIX 語意將路徑解析為相對於工作目錄的絕對路徑。"""
        return normalize(posixpath.join(current_directory, path))

    # --- 序列化 ---

    def serialize(self) -> str:
        """將整個 volume 序列化為 JSON 字串。"""
        return json.dumps(self._volume.to_json())

    def restore(self, serialized: str) -> None:
        """以快照取代目前的 volume。

        快照無法解析時保留原本的 volume。

        Raises:
            ValueError: 快照不是合法的 JSON 或格式不正確
        """
        new_volume = Volume.from_json(json.loads(serialized))
        old_volume = self._volume
        self._volume = new_volume
        old_volume.release()
        logger.info('volume 已還原', extra={'size': len(serialized)})

    def release(self) -> None:
        """釋放 volume，shell 結束時呼叫。"""
        self._volume.release()
        logger.debug('volume 已釋放')

    # --- 查詢 ---

    async def stat(self, path: str) -> FileStat:
        return self._volume.stat(path)

    async def lstat(self, path: str) -> FileStat:
        return self._volume.lstat(path)

    async def exists(self, path: str) -> bool:
        return self._volume.exists(path)

    async def access(self, path: str, mode: int = os.F_OK) -> None:
        self._volume.access(path, mode)

    async def readdir(self, path: str) -> list[str]:
        return self._volume.readdir(path)

    async def read_file(self, path: str, encoding: str | None = 'utf-8') -> str | bytes:
        """讀取檔案內容。

        Args:
            path: 絕對路徑
            encoding: 文字編碼；None 時回傳 bytes
        """
        data = self._volume.read_file(path)
        if encoding is None:
            return data
        return data.decode(encoding, errors='replace')

    # --- 寫入 ---

    async def write_file(self, path: str, data: str | bytes) -> None:
        self._volume.write_file(path, data)

    async def append_file(self, path: str, data: str | bytes) -> None:
        self._volume.append_file(path, data)

    async def mkdir(self, path: str, recursive: bool = False) -> None:
        self._volume.mkdir(path, recursive=recursive)

    async def copy_file(self, source: str, destination: str) -> None:
        self._volume.copy_file(source, destination)

    async def rm(self, path: str, recursive: bool = False, force: bool = False) -> None:
        self._volume.rm(path, recursive=recursive, force=force)

    async def utimes(self, path: str, atime: float | None = None, mtime: float | None = None) -> None:
        now = time.time()
        self._volume.utimes(
            path,
            atime if atime is not None else now,
            mtime if mtime is not None else now,
        )

    async def chmod(self, path: str, mode: int) -> None:
        self._volume.chmod(path, mode)
