import os
import tempfile

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

# Log của test ghi vào thư mục tạm, không làm bẩn thư mục dự án
_LOG_ROOT = tempfile.mkdtemp(prefix="edge_guard_logs_")
os.environ.setdefault("LOG_DIRECTORY", os.path.join(_LOG_ROOT, "edge"))
os.environ.setdefault("SYSTEM_LOG_DIRECTORY", os.path.join(_LOG_ROOT, "system"))

from security.config import GuardConfig  # noqa: E402
from security.counter_store import CounterStore  # noqa: E402


class FakeClock:
    """Đồng hồ giả: test tự đẩy thời gian thay vì time.sleep."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePipeline:
    """Pipeline giả: gom lệnh, execute() chạy lần lượt và trả kết quả độc lập cho từng lệnh."""

    def __init__(self, redis, transaction: bool):
        self._redis = redis
        self.transaction = transaction
        self._commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self._commands = []

    def _queue(self, name, *args, **kwargs):
        self._commands.append((name, args, kwargs))
        return self

    def incr(self, key):
        return self._queue("incr", key)

    def expire(self, key, seconds, nx=False):
        return self._queue("expire", key, seconds, nx=nx)

    def get(self, key):
        return self._queue("get", key)

    def zremrangebyscore(self, key, min_score, max_score):
        return self._queue("zremrangebyscore", key, min_score, max_score)

    def zadd(self, key, mapping):
        return self._queue("zadd", key, mapping)

    def zcard(self, key):
        return self._queue("zcard", key)

    def pexpire(self, key, ms):
        return self._queue("pexpire", key, ms)

    async def execute(self, raise_on_error=True):
        self._redis._check_up()
        self._redis.pipelines_executed += 1
        results = []
        for name, args, kwargs in self._commands:
            try:
                results.append(getattr(self._redis, f"_{name}")(*args, **kwargs))
            except Exception as ex:
                if raise_on_error:
                    raise
                results.append(ex)
        self._commands = []
        return results


class FakeRedis:
    """
    Redis giả trong bộ nhớ (chỉ các lệnh guard dùng), TTL tính theo FakeClock.
    fail = True -> mọi lệnh ném ConnectionError như khi Redis sập.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.fail = False
        self.pipelines_executed = 0
        self.closed = False
        self._data = {}
        self._expire_at = {}

    # ----- tiện ích cho test -----

    def _check_up(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _alive(self, key) -> bool:
        exp = self._expire_at.get(key)
        if exp is not None and self.clock() >= exp:
            self._data.pop(key, None)
            self._expire_at.pop(key, None)
        return key in self._data

    def ttl(self, key):
        if not self._alive(key):
            return -2
        exp = self._expire_at.get(key)
        return -1 if exp is None else exp - self.clock()

    def value(self, key):
        return self._data.get(key) if self._alive(key) else None

    # ----- lệnh dùng trong pipeline -----

    def _incr(self, key):
        current = int(self._data[key]) if self._alive(key) else 0
        current += 1
        self._data[key] = str(current).encode()
        return current

    def _expire(self, key, seconds, nx=False):
        if not self._alive(key):
            return False
        if nx and key in self._expire_at:
            return False
        self._expire_at[key] = self.clock() + seconds
        return True

    def _pexpire(self, key, ms):
        return self._expire(key, ms / 1000)

    def _get(self, key):
        if not self._alive(key):
            return None
        value = self._data[key]
        if isinstance(value, dict):
            raise TypeError("WRONGTYPE Operation against a key holding the wrong kind of value")
        return value

    def _zremrangebyscore(self, key, min_score, max_score):
        if not self._alive(key):
            return 0
        zset = self._data[key]
        removed = [m for m, s in zset.items() if min_score <= s <= max_score]
        for m in removed:
            del zset[m]
        return len(removed)

    def _zadd(self, key, mapping):
        if not self._alive(key):
            self._data[key] = {}
        zset = self._data[key]
        added = sum(1 for m in mapping if m not in zset)
        zset.update(mapping)
        return added

    def _zcard(self, key):
        return len(self._data[key]) if self._alive(key) else 0

    # ----- API async giống redis.asyncio.Redis -----

    def pipeline(self, transaction=True):
        return FakePipeline(self, transaction)

    async def get(self, key):
        self._check_up()
        return self._get(key)

    async def set(self, key, value, nx=False, ex=None):
        self._check_up()
        if nx and self._alive(key):
            return None
        self._data[key] = value if isinstance(value, bytes) else str(value).encode()
        self._expire_at.pop(key, None)
        if ex is not None:
            self._expire_at[key] = self.clock() + ex
        return True

    async def zrem(self, key, *members):
        self._check_up()
        if not self._alive(key):
            return 0
        zset = self._data[key]
        removed = [m for m in members if m in zset]
        for m in removed:
            del zset[m]
        return len(removed)

    async def ping(self):
        self._check_up()
        return True

    async def aclose(self):
        self.closed = True


class RecordingNotifier:
    """Notifier giả: chỉ ghi lại các tin nhắn được gửi."""

    def __init__(self):
        self.messages = []

    def send(self, message: str) -> None:
        self.messages.append(message)

    def start(self):
        return None

    async def stop(self):
        return None


class AsnLookupStub:
    """
    Dịch vụ tra cứu ASN giả cho httpx.MockTransport.
    responses: ip -> (status, body json); mặc định AS15169.
    """

    def __init__(self):
        self.calls = []
        self.responses = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        ip = request.url.path.strip("/").split("/")[0]
        self.calls.append(ip)
        status, body = self.responses.get(ip, (200, {"ip": ip, "org": "AS15169 Google LLC"}))
        return httpx.Response(status, json=body)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def store(fake_redis):
    return CounterStore(fake_redis)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def asn_stub():
    return AsnLookupStub()


@pytest.fixture
def asn_client(asn_stub):
    return httpx.AsyncClient(transport=httpx.MockTransport(asn_stub), base_url="https://asn.test")


@pytest.fixture
def config():
    return GuardConfig(
        blocked_countries=frozenset({"CN", "RU"}),
        blocked_asns=frozenset({14061, 16276}),
        allowed_user_agents=frozenset({"Mozilla", "Googlebot"}),
        rate_limit_requests=10,
        rate_limit_window_seconds=10,
        attack_threshold=10_000,
        attack_window_seconds=60,
        notify_cooldown_seconds=30,
        asn_lookup_url="https://asn.test/{ip}/json",
        asn_cache_ttl_seconds=3600,
        redis_url="redis://fake",
    )
