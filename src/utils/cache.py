import json                                   # Serialize object -> JSON
from typing import Any
from log.system_log import system_logger
from security.counter_store import CounterStore, log_store_error
from security.errors import StoreUnavailable

"""
Cache JSON trên Redis (qua CounterStore), dùng cho kết quả tra cứu ASN.
- Redis OK: trả/ghi object Python
- Redis down: coi như cache miss / bỏ qua ghi, log có throttle, không throw
"""


async def get_cache(store: CounterStore, key: str) -> Any:
    """
    Lấy dữ liệu đã cache từ Redis theo key.
     - Redis OK: trả object Python
     - Redis down hoặc dữ liệu hỏng: trả None (coi như cache miss)
    """
    try:
        b = await store.get(key)                # GET bytes từ Redis
    except StoreUnavailable as ex:
        log_store_error(ex.cause, "CACHE_GET")
        return None                             # fail-open: coi như cache miss

    if not b:
        return None                             # không có key -> cache miss

    try:
        # b là bytes (do decode_responses=False), decode utf-8 trước khi parse
        return json.loads(b.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as ex:
        # Dữ liệu cache hỏng/khác format -> coi như miss
        system_logger.warning("Cache decode/loads failed for key=%s: %s", key, ex)
        return None


async def set_cache(store: CounterStore, key: str, value: Any, ttl: int = 60) -> None:
    """
    Lưu object vào Redis (JSON) với TTL giây.
    - Redis down: bỏ qua, không throw, log (throttle)
    """
    data = json.dumps(value, ensure_ascii=False).encode("utf-8")
    try:
        await store.set(key, data, ttl)
    except StoreUnavailable as ex:
        log_store_error(ex.cause, "CACHE_SETEX")
