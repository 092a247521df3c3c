import time
from typing import Callable, Optional, Union
import httpx
from fastapi import Request
from fastapi.responses import JSONResponse

from log.system_log import system_logger
from middlerware.logger import log_verdict
from security.asn_resolver import AsnResolver
from security.attack_detector import AttackDetector
from security.classifier import Allow, ClassifierChain, Deny
from security.config import GuardConfig
from security.counter_store import CounterStore
from security.errors import RateLimitUnavailable
from security.rate_limiter import SlidingWindowRateLimiter
from utils.get_ip_client import ClientIdentity, build_identity

"""
Edge guard: chạy cho MỌI request trước khi tới ứng dụng.
Thứ tự xử lý 1 request:
    1. Đếm request vào bộ đếm tấn công (trước mọi bước chặn, để request bị chặn sau đó vẫn được đếm).
    2. Nếu tổng vượt ngưỡng -> gửi thông báo (tối đa 1 lần / cooldown).
    3. Chạy chuỗi phân loại: quốc gia -> ASN -> User-Agent -> rate limit.
    4. Cho qua hoặc trả 403/429.
Không cấu hình Redis -> guard tắt, cho qua toàn bộ.
"""

DETAIL_UNDER_ATTACK = "Website đang bị tấn công. Vui lòng thử lại sau."


class EdgeGuard:

    def __init__(self, config: GuardConfig, detector: Optional[AttackDetector] = None,
                 chain: Optional[ClassifierChain] = None):
        self.config = config
        self.detector = detector
        self.chain = chain

    @property
    def enabled(self) -> bool:
        return self.detector is not None and self.chain is not None

    async def evaluate(self, identity: ClientIdentity) -> Union[Allow, Deny]:
        """
        Quyết định cho 1 client. Chỉ ném lỗi khi không kiểm tra được rate limit (RateLimitUnavailable).
        """
        total, blocked = await self.detector.record_and_check()
        await self.detector.check_and_alert(total, blocked)

        # Tuỳ chọn: đang bị tấn công thì chặn toàn bộ
        if self.config.block_on_burst and self.detector.is_attack(total):
            await self.detector.record_blocked()
            return Deny("burst", 503, DETAIL_UNDER_ATTACK)

        return await self.chain.classify(identity)

    async def dispatch(self, request: Request, call_next):
        """Middleware http của FastAPI: app.middleware("http")(guard.dispatch)."""
        if not self.enabled or request.url.path in self.config.excluded_paths:
            return await call_next(request)

        start = time.perf_counter()
        identity = build_identity(request, self.config.country_header)

        try:
            outcome = await self.evaluate(identity)
        except RateLimitUnavailable:
            # Lỗi kiểm tra quota: để server trả 500 chung chung, không cho lọt request
            log_verdict(request, identity, "error", 500, (time.perf_counter() - start) * 1000, reason="rate_limit")
            raise

        if isinstance(outcome, Deny):
            log_verdict(request, identity, "deny", outcome.status,
                        (time.perf_counter() - start) * 1000, reason=outcome.reason, asn=outcome.asn)
            return JSONResponse({"detail": outcome.detail}, status_code=outcome.status)

        response = await call_next(request)
        log_verdict(request, identity, "allow", response.status_code, (time.perf_counter() - start) * 1000,
                    asn=outcome.asn)
        return response


def create_edge_guard(config: GuardConfig, redis, http_client: Optional[httpx.AsyncClient],
                      notifier, clock: Callable[[], float] = time.time) -> EdgeGuard:
    """
    Lắp các thành phần của guard.
    - redis None (chưa cấu hình REDIS_URL): trả guard bị tắt, cho qua toàn bộ request.
    """
    if redis is None:
        system_logger.warning("REDIS_URL is not set. Edge guard is disabled, all requests pass through.")
        return EdgeGuard(config)

    if not config.notifier_configured:
        system_logger.warning("Telegram credentials are not set. Attack alerts are disabled.")

    store = CounterStore(redis)
    detector = AttackDetector(store, config, notifier)
    asn_resolver = AsnResolver(
        store,
        http_client or httpx.AsyncClient(timeout=config.asn_lookup_timeout),
        lookup_url=config.asn_lookup_url,
        field=config.asn_lookup_field,
        cache_ttl=config.asn_cache_ttl_seconds,
    )
    rate_limiter = SlidingWindowRateLimiter(
        redis,
        limit=config.rate_limit_requests,
        window_seconds=config.rate_limit_window_seconds,
        clock=clock,
    )
    chain = ClassifierChain(config, asn_resolver, rate_limiter, detector)
    return EdgeGuard(config, detector, chain)
