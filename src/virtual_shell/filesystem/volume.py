"""記憶體內檔案系統 volume。

以樹狀節點保存目錄與檔案，提供類 POSIX 的路徑操作。
錯誤以內建的 OSError 子類別回報（FileNotFoundError、NotADirectoryError 等），
並帶有對應的 errno。
"""

from __future__ import annotations

import errno
import os
import posixpath
import time
from dataclasses import dataclass, field
from typing import Any

from virtual_shell.errors import VolumeReleasedError

FILE = 'file'
DIRECTORY = 'directory'

DEFAULT_FILE_MODE = 0o666
DEFAULT_DIRECTORY_MODE = 0o777

# access() 的模式位元對應到擁有者權限位元
_ACCESS_BITS = (
    (os.R_OK, 0o400),
    (os.W_OK, 0o200),
    (os.X_OK, 0o100),
)


def _fs_error(cls: type[OSError], code: int, path: str) -> OSError:
    return cls(code, os.strerror(code), path)


def normalize(path: str) -> str:
    """正規化絕對路徑。

    Raises:
        ValueError: 路徑不是絕對路徑
    """
    if not path.startswith('/'):
        raise ValueError(f'volume 路徑必須是絕對路徑: {path}')
    normalized = posixpath.normpath(path)
    # normpath 會保留開頭的 //
    return '/' + normalized.lstrip('/')


def _parts(path: str) -> list[str]:
    return [part for part in normalize(path).split('/') if part]


@dataclass
class FileStat:
    """stat() 的結果。"""

    path: str
    kind: str
    size: int
    mode: int
    mtime: float
    ctime: float

    def is_file(self) -> bool:
        return self.kind == FILE

    def is_directory(self) -> bool:
        return self.kind == DIRECTORY


@dataclass
class _Node:
    kind: str
    mode: int
    data: bytes = b''
    children: dict[str, _Node] = field(default_factory=lambda: {})
    mtime: float = field(default_factory=time.time)
    ctime: float = field(default_factory=time.time)

    def touch(self) -> None:
        self.mtime = time.time()


class Volume:
    """記憶體內的檔案系統樹。

    所有路徑都必須是絕對路徑；相對路徑的解析由 VirtualFilesystemBridge 負責。
    沒有符號連結，因此 lstat 與 stat 行為相同。
    """

    def __init__(self) -> None:
        self._root = _Node(kind=DIRECTORY, mode=DEFAULT_DIRECTORY_MODE)
        self._released = False

    # --- 生命週期 ---

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """釋放 volume，之後的任何操作都會失敗。"""
        self._root = _Node(kind=DIRECTORY, mode=DEFAULT_DIRECTORY_MODE)
        self._released = True

    def _ensure_open(self) -> None:
        if self._released:
            raise VolumeReleasedError('volume 已被釋放')

    # --- 節點查找 ---

    def _lookup(self, path: str) -> _Node:
        self._ensure_open()
        node = self._root
        for part in _parts(path):
            if node.kind != DIRECTORY:
                raise _fs_error(NotADirectoryError, errno.ENOTDIR, path)
            child = node.children.get(part)
            if child is None:
                raise _fs_error(FileNotFoundError, errno.ENOENT, path)
            node = child
        return node

    def _parent(self, path: str) -> tuple[_Node, str]:
        parts = _parts(path)
        if not parts:
            raise _fs_error(PermissionError, errno.EPERM, path)
        parent = self._lookup('/' + '/'.join(parts[:-1]))
        if parent.kind != DIRECTORY:
            raise _fs_error(NotADirectoryError, errno.ENOTDIR, path)
        return parent, parts[-1]

    @staticmethod
    def _check_mode(node: _Node, mode: int, path: str) -> None:
        for flag, bit in _ACCESS_BITS:
            if mode & flag and not node.mode & bit:
                raise _fs_error(PermissionError, errno.EACCES, path)

    # --- 查詢 ---

    def exists(self, path: str) -> bool:
        try:
            self._lookup(path)
        except (FileNotFoundError, NotADirectoryError):
            return False
        return True

    def stat(self, path: str) -> FileStat:
        node = self._lookup(path)
        return FileStat(
            path=normalize(path),
            kind=node.kind,
            size=len(node.data) if node.kind == FILE else 0,
            mode=node.mode,
            mtime=node.mtime,
            ctime=node.ctime,
        )

    def lstat(self, path: str) -> FileStat:
        return self.stat(path)

    def access(self, path: str, mode: int = os.F_OK) -> None:
        """檢查路徑是否存在且具備指定權限。

        Raises:
            FileNotFoundError: 路徑不存在
            PermissionError: 權限不足
        """
        node = self._lookup(path)
        self._check_mode(node, mode, path)

    def readdir(self, path: str) -> list[str]:
        node = self._lookup(path)
        if node.kind != DIRECTORY:
            raise _fs_error(NotADirectoryError, errno.ENOTDIR, path)
        return sorted(node.children)

    def read_file(self, path: str) -> bytes:
        node = self._lookup(path)
        if node.kind == DIRECTORY:
            raise _fs_error(IsADirectoryError, errno.EISDIR, path)
        self._check_mode(node, os.R_OK, path)
        return node.data

    # --- 寫入 ---

    def write_file(self, path: str, data: bytes | str, *, append: bool = False) -> None:
        """寫入檔案，不存在時建立。

        Args:
            path: 絕對路徑
            data: 內容（字串以 UTF-8 編碼）
            append: True 時附加到檔尾
        """
        if isinstance(data, str):
            data = data.encode('utf-8', errors='surrogateescape')
        parent, name = self._parent(path)
        node = parent.children.get(name)
        if node is None:
            self._check_mode(parent, os.W_OK, path)
            parent.children[name] = _Node(kind=FILE, mode=DEFAULT_FILE_MODE, data=bytes(data))
            parent.touch()
            return
        if node.kind == DIRECTORY:
            raise _fs_error(IsADirectoryError, errno.EISDIR, path)
        self._check_mode(node, os.W_OK, path)
        node.data = node.data + data if append else bytes(data)
        node.touch()

    def append_file(self, path: str, data: bytes | str) -> None:
        self.write_file(path, data, append=True)

    def mkdir(self, path: str, *, recursive: bool = False) -> None:
        if recursive:
            node = self._root
            self._ensure_open()
            for part in _parts(path):
                child = node.children.get(part)
                if child is None:
                    child = _Node(kind=DIRECTORY, mode=DEFAULT_DIRECTORY_MODE)
                    node.children[part] = child
                    node.touch()
                elif child.kind != DIRECTORY:
                    raise _fs_error(NotADirectoryError, errno.ENOTDIR, path)
                node = child
            return

        parent, name = self._parent(path)
        if name in parent.children:
            raise _fs_error(FileExistsError, errno.EEXIST, path)
        self._check_mode(parent, os.W_OK, path)
        parent.children[name] = _Node(kind=DIRECTORY, mode=DEFAULT_DIRECTORY_MODE)
        parent.touch()

    def copy_file(self, source: str, destination: str) -> None:
        data = self.read_file(source)
        self.write_file(destination, data)

    def rm(self, path: str, *, recursive: bool = False, force: bool = False) -> None:
        """移除檔案或目錄。

        Args:
            path: 絕對路徑
            recursive: 允許移除目錄與其內容
            force: 路徑不存在時不報錯
        """
        try:
            parent, name = self._parent(path)
            node = parent.children.get(name)
            if node is None:
                raise _fs_error(FileNotFoundError, errno.ENOENT, path)
        except FileNotFoundError:
            if force:
                return
            raise
        if node.kind == DIRECTORY and not recursive:
            raise _fs_error(IsADirectoryError, errno.EISDIR, path)
        del parent.children[name]
        parent.touch()

    def utimes(self, path: str, atime: float, mtime: float) -> None:
        node = self._lookup(path)
        node.mtime = mtime

    def chmod(self, path: str, mode: int) -> None:
        node = self._lookup(path)
        node.mode = mode & 0o777

    # --- 序列化 ---

    def to_json(self) -> dict[str, str | None]:
        """將整棵樹轉成 {路徑: 內容} 字典。

        檔案的值為文字內容，空目錄的值為 None；非空目錄由其子路徑隱含。
        """
        self._ensure_open()
        result: dict[str, str | None] = {}

        def _walk(node: _Node, path: str) -> None:
            if node.kind == FILE:
                result[path] = node.data.decode('utf-8', errors='surrogateescape')
                return
            if not node.children and path != '/':
                result[path] = None
                return
            for name in sorted(node.children):
                _walk(node.children[name], posixpath.join(path, name))

        _walk(self._root, '/')
        return result

    @classmethod
    def from_json(cls, data: Any) -> Volume:
        """從 to_json() 的字典重建 volume。

        Raises:
            ValueError: 資料格式不正確
        """
        if not isinstance(data, dict):
            raise ValueError('volume 快照必須是 JSON 物件')
        volume = cls()
        for path, content in data.items():
            if not isinstance(path, str) or not path.startswith('/'):
                raise ValueError(f'快照中的路徑無效: {path!r}')
            if content is None:
                volume.mkdir(path, recursive=True)
            elif isinstance(content, str):
                volume.mkdir(posixpath.dirname(normalize(path)), recursive=True)
                volume.write_file(path, content)
            else:
                raise ValueError(f'快照中的內容無效: {path}')
        return volume
