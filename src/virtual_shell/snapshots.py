"""Volume 快照儲存模組。

使用 Redis 保存 serialize_volume() 的結果，讓 shell 狀態可以跨行程還原。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import redis.asyncio as redis

if TYPE_CHECKING:
    from virtual_shell.shell import VirtualShell

logger = logging.getLogger(__name__)

# 快照存活時間：24 小時
SNAPSHOT_TTL = 86400

# Redis key 模板
_KEY_TEMPLATE = 'shell:{session_id}:volume'


class SnapshotStore:
    """Redis 快照儲存。

    Attributes:
        _redis: Redis 異步連接
    """

    def __init__(self, redis_url: str = 'redis://localhost:6379', client: redis.Redis | None = None) -> None:
        """初始化快照儲存。

        Args:
            redis_url: Redis 連接 URL
            client: 既有的 Redis 客戶端（提供時忽略 redis_url）
        """
        if client is not None:
            self._redis = client
            return
        parsed = urlparse(redis_url)
        self._redis = redis.Redis(
            host=parsed.hostname or 'localhost',
            port=parsed.port or 6379,
            db=int(parsed.path.lstrip('/') or 0),
            password=parsed.password,
            decode_responses=True,
        )

    def _key(self, session_id: str) -> str:
        """生成快照的 Redis key。"""
        return _KEY_TEMPLATE.format(session_id=session_id)

    async def save(self, session_id: str, shell: VirtualShell) -> str:
        """序列化 shell 的 volume 並寫入 Redis。

        Returns:
            寫入的快照字串
        """
        serialized = shell.serialize_volume()
        await self._redis.setex(self._key(session_id), SNAPSHOT_TTL, serialized)
        logger.debug('儲存 volume 快照', extra={'session_id': session_id, 'size': len(serialized)})
        return serialized

    async def load(self, session_id: str) -> str | None:
        """讀取快照，不存在時回傳 None。"""
        raw = await self._redis.get(self._key(session_id))
        if raw is None:
            logger.debug('沒有 volume 快照', extra={'session_id': session_id})
            return None
        return raw.decode('utf-8') if isinstance(raw, bytes) else raw

    async def restore_into(self, session_id: str, shell: VirtualShell) -> bool:
        """將快照還原到 shell。

        Returns:
            是否找到並還原快照
        """
        serialized = await self.load(session_id)
        if serialized is None:
            return False
        shell.restore(serialized)
        logger.info('volume 快照已還原', extra={'session_id': session_id})
        return True

    async def reset(self, session_id: str) -> None:
        """刪除快照。"""
        await self._redis.delete(self._key(session_id))
        logger.debug('volume 快照已刪除', extra={'session_id': session_id})

    async def close(self) -> None:
        """關閉 Redis 連接。"""
        await self._redis.aclose()
