import time
from typing import Any, List, Optional, Tuple
from redis.exceptions import RedisError
from log.system_log import system_logger
from security.errors import StoreUnavailable

"""
Counter Store: lớp bọc mỏng quanh Redis (redis.asyncio).
- Chỉ cung cấp các thao tác nguyên tử: INCR, EXPIRE NX, GET, SET NX EX.
- Mỗi thao tác gộp trong 1 pipeline = 1 lần round trip (không phải transaction MULTI/EXEC).
- Không chứa logic nghiệp vụ; caller tự quyết định fail-open hay ném lỗi.

EXPIRE ... NX: chỉ đặt TTL khi key CHƯA có TTL -> mỗi lần INCR không kéo dài cửa sổ,
cửa sổ đếm bắt đầu từ request đầu tiên và tự reset khi key hết hạn.
"""

# Throttle log: tối đa 1 log/giây khi Redis đang lỗi
_LOG_EVERY_SECONDS = 1.0
_last_log_ts: float = 0.0


def log_store_error(ex: Exception, op: str) -> None:
    """Log lỗi Redis có throttle để tránh spam log khi Redis down."""
    global _last_log_ts
    now = time.time()
    if now - _last_log_ts >= _LOG_EVERY_SECONDS:
        _last_log_ts = now
        system_logger.warning("Counter store Redis error at %s: %s", op, ex)


class CounterStore:
    """
    Adapter cho Redis dùng chung giữa mọi request (và mọi node).
    Mọi lỗi Redis được gói lại thành StoreUnavailable.
    """

    def __init__(self, redis):
        self._redis = redis

    async def _execute(self, pipe, op: str) -> List[Any]:
        try:
            # raise_on_error=False: mỗi lệnh có kết quả độc lập, lỗi của 1 lệnh không làm mất kết quả lệnh khác
            return await pipe.execute(raise_on_error=False)
        except RedisError as ex:
            raise StoreUnavailable(op, ex) from ex

    async def incr_and_read(self, incr_key: str, read_key: str, ttl: int) -> Optional[Tuple[int, Optional[bytes]]]:
        """
        1 round trip:
        - INCR incr_key + EXPIRE incr_key ttl NX
        - GET read_key (không thay đổi giá trị) + EXPIRE read_key ttl NX
        Trả (giá trị sau INCR, giá trị đọc được) hoặc None nếu INCR không có kết quả.
        """
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.incr(incr_key)
            pipe.expire(incr_key, ttl, nx=True)
            pipe.get(read_key)
            pipe.expire(read_key, ttl, nx=True)
            results = await self._execute(pipe, "INCR_AND_READ")

        if not results or isinstance(results[0], Exception) or results[0] is None:
            return None

        read_value = results[2]
        if isinstance(read_value, Exception):
            log_store_error(read_value, "GET")
            read_value = None
        return int(results[0]), read_value

    async def incr_with_window(self, key: str, ttl: int) -> Optional[int]:
        """INCR key + EXPIRE key ttl NX trong 1 round trip."""
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl, nx=True)
            results = await self._execute(pipe, "INCR_WITH_WINDOW")

        if not results or isinstance(results[0], Exception):
            return None
        return int(results[0])

    async def claim_flag(self, key: str, ttl: int) -> bool:
        """
        SET key 1 NX EX ttl.
        True nếu key chưa tồn tại và ta vừa tạo được (người đầu tiên trong chu kỳ TTL).
        """
        try:
            return bool(await self._redis.set(key, b"1", nx=True, ex=ttl))
        except RedisError as ex:
            raise StoreUnavailable("SET_NX", ex) from ex

    async def get(self, key: str) -> Optional[bytes]:
        try:
            return await self._redis.get(key)
        except RedisError as ex:
            raise StoreUnavailable("GET", ex) from ex

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        try:
            await self._redis.set(key, value, ex=ttl)
        except RedisError as ex:
            raise StoreUnavailable("SETEX", ex) from ex

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as ex:
            raise StoreUnavailable("PING", ex) from ex

    async def close(self) -> None:
        await self._redis.aclose()
