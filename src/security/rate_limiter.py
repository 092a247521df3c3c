import time
import uuid
from dataclasses import dataclass
from typing import Callable
from redis.exceptions import RedisError
from security.errors import RateLimitUnavailable
from security.keyspace import k_rl

"""
Rate Limiter (dựa trên Redis Sorted Set)
- Giới hạn số request trong "cửa sổ" thời gian gần nhất (sliding window). Có nghĩa là mỗi ip chỉ được gửi tối đa N request trong M giây gần nhất.
- Cách làm: dùng Redis Sorted Set (ZSET) để lưu timestamp (ms) của các request, với score = timestamp (ms).
- Mỗi lần có request mới (gói trong 1 transaction MULTI/EXEC để các bước không xen kẽ giữa các node):
    1. Xoá các timestamp cũ hơn (ngoài cửa sổ M giây).
    2. Thêm timestamp hiện tại vào ZSET (member unique: now:uuid).
    3. Đếm số phần tử còn lại trong ZSET (số request trong cửa sổ).
    4. Đặt TTL tự dọn rác (gấp đôi cửa sổ).
- So sánh với giới hạn N: nếu <= N thì cho phép, ngược lại từ chối.
- Request bị từ chối KHÔNG được tính vào quota: ZREM member vừa thêm -> ZSET chỉ chứa các request đã cho qua,
  client vượt quota sẽ được phục vụ lại ngay khi request cũ nhất rơi khỏi cửa sổ.

Khác với bộ đếm tấn công, đây là kiểm tra BẮT BUỘC: Redis lỗi -> ném RateLimitUnavailable,
không được âm thầm cho qua.
"""


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    count: int      # số request đã cho qua trong cửa sổ + request hiện tại
    limit: int


class SlidingWindowRateLimiter:
    """
    Giới hạn `limit` request / `window_seconds` giây cho mỗi identity (IP).
    - clock: hàm trả thời gian hiện tại (giây), mặc định time.time
    """

    def __init__(self, redis, limit: int, window_seconds: int,
                 prefix: str = "ratelimit", clock: Callable[[], float] = time.time):
        if limit <= 0 or window_seconds <= 0:
            raise ValueError(f"limit/window phải là số dương, nhận được: {limit}/{window_seconds}")
        self._redis = redis
        self.limit_requests = limit
        self.window_ms = window_seconds * 1000
        self.prefix = prefix
        self._clock = clock

    async def limit(self, identity: str) -> RateLimitResult:
        """
        Kiểm tra 1 request của identity.
        - Redis OK: trả kết quả thật
        - Redis lỗi: ném RateLimitUnavailable
        """
        key = k_rl(identity, self.prefix)
        now = int(self._clock() * 1000)
        member = f"{now}:{uuid.uuid4().hex}"

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                # Giữ (now-window, now]: loại bỏ mọi dấu <= now - window
                pipe.zremrangebyscore(key, 0, now - self.window_ms)
                pipe.zadd(key, {member: now})
                pipe.zcard(key)
                pipe.pexpire(key, self.window_ms * 2)
                res = await pipe.execute()
        except RedisError as ex:
            raise RateLimitUnavailable(f"Rate limit check failed for {identity}: {ex}") from ex

        count = int(res[2])
        allowed = count <= self.limit_requests
        if not allowed:
            # Bị từ chối -> gỡ dấu vừa thêm để không chiếm quota
            try:
                await self._redis.zrem(key, member)
            except RedisError as ex:
                raise RateLimitUnavailable(f"Rate limit rollback failed for {identity}: {ex}") from ex
        return RateLimitResult(allowed=allowed, count=count, limit=self.limit_requests)
