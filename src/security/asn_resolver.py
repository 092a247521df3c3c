import re
from typing import Optional
import httpx
from log.system_log import system_logger
from security.counter_store import CounterStore
from security.keyspace import k_asn
from utils.cache import get_cache, set_cache
from utils.utils import is_public_ip

"""
Tra cứu ASN (autonomous system number) của 1 IP.
- IP loopback / private / không hợp lệ: trả None luôn, không gọi ra ngoài.
- Có cache trên Redis (TTL mặc định 1 giờ) để không gọi dịch vụ tra cứu cho mỗi request.
- Dịch vụ tra cứu trả JSON, ví dụ ipinfo.io: {"org": "AS15169 Google LLC", ...}
- Mọi lỗi (mạng, timeout, HTTP lỗi, dữ liệu sai) -> None (fail-open) + log, không bao giờ ném lỗi.
"""

# "AS15169 Google LLC" -> 15169
_ASN_PATTERN = re.compile(r"^\s*AS(\d+)\b", re.IGNORECASE)


def parse_asn(raw) -> Optional[int]:
    """Parse chuỗi định dạng nhà cung cấp (AS<số>...) thành số nguyên, sai format -> None."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw if raw > 0 else None
    if not isinstance(raw, str):
        return None
    m = _ASN_PATTERN.match(raw)
    return int(m.group(1)) if m else None


class AsnResolver:

    def __init__(self, store: CounterStore, client: httpx.AsyncClient,
                 lookup_url: str = "https://ipinfo.io/{ip}/json",
                 field: str = "org", cache_ttl: int = 3600):
        self._store = store
        self._client = client
        self._lookup_url = lookup_url
        self._field = field
        self._cache_ttl = cache_ttl

    async def resolve(self, address: str) -> Optional[int]:
        if not is_public_ip(address):
            return None

        cached = await get_cache(self._store, k_asn(address))
        if isinstance(cached, int):
            return cached

        asn = await self._lookup(address)
        if asn is not None:
            await set_cache(self._store, k_asn(address), asn, ttl=self._cache_ttl)
        return asn

    async def _lookup(self, address: str) -> Optional[int]:
        url = self._lookup_url.format(ip=address)
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as ex:
            system_logger.warning("ASN lookup failed for %s: %s", address, ex)
            return None

        if response.status_code != 200:
            system_logger.warning("ASN lookup for %s returned HTTP %s", address, response.status_code)
            return None

        try:
            body = response.json()
        except ValueError:
            system_logger.warning("ASN lookup for %s returned a non-JSON body", address)
            return None

        raw = body.get(self._field) if isinstance(body, dict) else None
        asn = parse_asn(raw)
        if asn is None:
            system_logger.warning("Could not parse ASN for %s from %r", address, raw)
        return asn
