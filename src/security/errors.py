"""
Các lỗi riêng của guard.
- Lỗi ở phần "mềm" (bộ đếm, cache ASN, thông báo) được bắt ngay tại chỗ và fail-open.
- Lỗi ở phần "cứng" (rate limit) được ném lên để không âm thầm cho lọt request.
"""


class GuardError(Exception):
    """Lỗi gốc của edge guard."""


class StoreUnavailable(GuardError):
    """Redis không truy cập được hoặc trả lỗi trong lúc thao tác."""

    def __init__(self, op: str, cause: Exception):
        super().__init__(f"Redis error at {op}: {cause}")
        self.op = op
        self.cause = cause


class RateLimitUnavailable(GuardError):
    """Không kiểm tra được rate limit -> không được phép cho qua trong im lặng."""
