from dataclasses import dataclass, replace
from typing import Optional, Union
from log.system_log import system_logger
from security.config import GuardConfig
from security.errors import GuardError, RateLimitUnavailable
from utils.get_ip_client import ClientIdentity

"""
Chuỗi phân loại request gồm 4 bước, chạy theo thứ tự cố định:
    1. Quốc gia (denylist)        -> 403
    2. ASN / nhà mạng (denylist)  -> 403
    3. User-Agent (allowlist)     -> 403
    4. Rate limit theo IP         -> 429
Bước nào chặn thì dừng luôn, đồng thời tăng bộ đếm "blocked" đúng 1 lần.

Mỗi bước trả về 1 Outcome:
- Allow: cho qua bước này
- Deny(reason, status, detail): chặn
Kết quả cuối của cả chuỗi mang theo ASN đã tra được (nếu có) để ghi vào log quyết định.
- Indeterminate(stage, error): không kết luận được (lỗi tra cứu / Redis)
Indeterminate được chuyển thành kết quả cụ thể theo chính sách của từng bước (resolve_indeterminate).
"""


@dataclass(frozen=True)
class Allow:
    asn: Optional[int] = None   # ASN đã tra được (nếu có), để ghi log


@dataclass(frozen=True)
class Deny:
    reason: str
    status: int
    detail: str
    asn: Optional[int] = None


@dataclass(frozen=True)
class Indeterminate:
    stage: str
    error: Optional[str] = None


Outcome = Union[Allow, Deny, Indeterminate]

ALLOW = Allow()

# Nội dung trả về cho client: cố định, không lộ thông tin nội bộ
DETAIL_COUNTRY = "Truy cập từ quốc gia {country} bị từ chối."
DETAIL_ASN = "Truy cập từ mạng của bạn bị từ chối."
DETAIL_USER_AGENT = "Trình duyệt hoặc bot của bạn không được phép truy cập."
DETAIL_RATE_LIMIT = "Bạn đã gửi quá nhiều request. Vui lòng thử lại sau."


def check_country(identity: ClientIdentity, blocked_countries) -> Outcome:
    """Không có mã quốc gia -> cho qua."""
    if identity.country and identity.country in blocked_countries:
        return Deny("country", 403, DETAIL_COUNTRY.format(country=identity.country))
    return ALLOW


def check_asn(asn: Optional[int], blocked_asns) -> Outcome:
    """Không tra được ASN -> Indeterminate (chính sách: cho qua)."""
    if asn is None:
        return Indeterminate("asn")
    if asn in blocked_asns:
        return Deny("asn", 403, DETAIL_ASN)
    return ALLOW


def check_user_agent(user_agent: str, allowed_user_agents) -> Outcome:
    """
    Allowlist: User-Agent phải CHỨA ít nhất 1 chuỗi con được phép (phân biệt hoa thường).
    UA rỗng không khớp gì -> luôn bị chặn (client phải tự khai báo).
    """
    if user_agent and any(agent in user_agent for agent in allowed_user_agents):
        return ALLOW
    return Deny("user_agent", 403, DETAIL_USER_AGENT)


async def check_rate(ip: str, rate_limiter) -> Outcome:
    try:
        result = await rate_limiter.limit(ip)
    except RateLimitUnavailable as ex:
        return Indeterminate("rate_limit", str(ex))
    if not result.allowed:
        return Deny("rate_limit", 429, DETAIL_RATE_LIMIT)
    return ALLOW


def resolve_indeterminate(outcome: Outcome) -> Union[Allow, Deny]:
    """
    Chính sách khi không kết luận được:
    - asn: fail-open (cho qua)
    - rate_limit: không được cho qua trong im lặng -> ném RateLimitUnavailable
    """
    if not isinstance(outcome, Indeterminate):
        return outcome
    if outcome.stage == "asn":
        return ALLOW
    if outcome.stage == "rate_limit":
        raise RateLimitUnavailable(outcome.error or "rate limiter unavailable")
    raise GuardError(f"No policy for indeterminate stage {outcome.stage}")


class ClassifierChain:

    def __init__(self, config: GuardConfig, asn_resolver, rate_limiter, detector):
        self._config = config
        self._asn_resolver = asn_resolver
        self._rate_limiter = rate_limiter
        self._detector = detector

    async def classify(self, identity: ClientIdentity) -> Union[Allow, Deny]:
        """
        Chạy lần lượt 4 bước, dừng ở bước đầu tiên chặn request.
        Các bước phải chạy tuần tự: bộ đếm blocked chỉ tăng SAU khi đã quyết định chặn.
        """
        outcome = resolve_indeterminate(check_country(identity, self._config.blocked_countries))
        if isinstance(outcome, Deny):
            return await self._reject(outcome)

        asn = await self._asn_resolver.resolve(identity.ip)
        outcome = resolve_indeterminate(check_asn(asn, self._config.blocked_asns))
        if isinstance(outcome, Deny):
            return await self._reject(outcome, asn)

        outcome = resolve_indeterminate(check_user_agent(identity.user_agent, self._config.allowed_user_agents))
        if isinstance(outcome, Deny):
            return await self._reject(outcome, asn)

        rate_outcome = await check_rate(identity.ip, self._rate_limiter)
        if isinstance(rate_outcome, Indeterminate):
            system_logger.error("Rate limit unavailable for %s: %s", identity.ip, rate_outcome.error)
        outcome = resolve_indeterminate(rate_outcome)
        if isinstance(outcome, Deny):
            return await self._reject(outcome, asn)

        return Allow(asn) if asn is not None else ALLOW

    async def _reject(self, outcome: Deny, asn: Optional[int] = None) -> Deny:
        await self._detector.record_blocked()
        return replace(outcome, asn=asn) if asn is not None else outcome
