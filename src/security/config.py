import os
from dataclasses import dataclass, field  # # Dùng dataclass cho nhóm cấu hình gọn gàng
from typing import FrozenSet, Optional, Tuple
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại

"""
Cấu hình cho lớp bảo vệ ở biên (edge guard).
Tất cả giá trị được đọc 1 lần khi khởi động, sau đó chỉ đọc (không sửa lúc chạy).
Muốn đổi danh sách chặn -> sửa biến môi trường / file .env rồi khởi động lại.
"""

# Danh sách quốc gia bị chặn (ISO 3166-1 alpha-2)
BLOCKED_COUNTRIES = (
    "VN", "CN", "IN", "PK", "BR", "ID", "TH", "TR", "EG", "SC", "IR", "NG", "RU"
)

# Các ASN của nhà cung cấp cloud/VPS thường được dùng để chạy bot
BLOCKED_ASNS = (
    14061,   # DigitalOcean
    16276,   # OVH
    24940,   # Hetzner
    63949,   # Linode/Akamai
    20473,   # Vultr (Choopa)
    45102,   # Alibaba Cloud
    132203,  # Tencent Cloud
)

# WHITELIST User-Agent: chỉ cho qua các chuỗi có chứa 1 trong các giá trị này (phân biệt hoa thường)
ALLOWED_USER_AGENTS = (
    "Mozilla",      # Chung cho hầu hết trình duyệt
    "Chrome",
    "Firefox",
    "Safari",
    "Edg",          # Microsoft Edge
    "OPR",          # Opera
    # Bot của công cụ tìm kiếm (SEO)
    "Googlebot",
    "Bingbot",
    "Slurp",        # Yahoo
    "DuckDuckBot",
    "YandexBot",
)

# Các đường dẫn không đi qua guard (probe của hạ tầng, icon)
EXCLUDED_PATHS = ("/healthz", "/readyz", "/favicon.ico")


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """
    Đọc biến môi trường dạng "a,b,c" -> tuple các phần tử đã strip.
    Nếu không khai báo thì dùng giá trị mặc định.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class GuardConfig:
    """
    Gom toàn bộ cấu hình guard vào 1 struct (chỉ đọc):
    - blocked_countries: mã quốc gia bị chặn (403)
    - blocked_asns: ASN bị chặn (403)
    - allowed_user_agents: chuỗi con User-Agent được phép, không khớp -> 403
    - rate_limit_requests / rate_limit_window_seconds: giới hạn N request / M giây / IP (429)
    - attack_threshold / attack_window_seconds: ngưỡng tổng request trong cửa sổ để coi là tấn công
    - notify_cooldown_seconds: thời gian chống spam thông báo (debounce)
    - block_on_burst: khi đang bị tấn công thì trả 503 cho mọi request (mặc định tắt)
    """
    blocked_countries: FrozenSet[str] = frozenset(BLOCKED_COUNTRIES)
    blocked_asns: FrozenSet[int] = frozenset(BLOCKED_ASNS)
    allowed_user_agents: FrozenSet[str] = frozenset(ALLOWED_USER_AGENTS)

    rate_limit_requests: int = 10
    rate_limit_window_seconds: int = 10

    attack_threshold: int = 10_000
    attack_window_seconds: int = 60
    notify_cooldown_seconds: int = 60
    block_on_burst: bool = False

    asn_lookup_url: str = "https://ipinfo.io/{ip}/json"
    asn_lookup_field: str = "org"
    asn_lookup_timeout: float = 2.0
    asn_cache_ttl_seconds: int = 3600

    country_header: str = "x-vercel-ip-country"
    excluded_paths: FrozenSet[str] = frozenset(EXCLUDED_PATHS)

    redis_url: Optional[str] = None
    telegram_bot_token: Optional[str] = field(default=None, repr=False)
    telegram_chat_id: Optional[str] = None

    @property
    def store_configured(self) -> bool:
        """Không có Redis thì không thể lọc an toàn -> guard sẽ cho qua toàn bộ."""
        return bool(self.redis_url)

    @property
    def notifier_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


def load_config() -> GuardConfig:
    """
    Đọc cấu hình từ biến môi trường (đã nạp .env).
    Chỉ gọi 1 lần lúc khởi động app.
    """
    return GuardConfig(
        blocked_countries=frozenset(c.upper() for c in _env_list("BLOCKED_COUNTRIES", BLOCKED_COUNTRIES)),
        blocked_asns=frozenset(
            int(a.upper().removeprefix("AS")) for a in _env_list("BLOCKED_ASNS", tuple(str(x) for x in BLOCKED_ASNS))
        ),
        allowed_user_agents=frozenset(_env_list("ALLOWED_USER_AGENTS", ALLOWED_USER_AGENTS)),
        rate_limit_requests=_env_int("RATE_LIMIT_REQUESTS", 10),
        rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", 10),
        attack_threshold=_env_int("ATTACK_THRESHOLD", 10_000),
        attack_window_seconds=_env_int("ATTACK_WINDOW_SECONDS", 60),
        notify_cooldown_seconds=_env_int("NOTIFY_COOLDOWN_SECONDS", 60),
        block_on_burst=_env_bool("ATTACK_BLOCK_ON_BURST"),
        asn_lookup_url=os.getenv("ASN_LOOKUP_URL", "https://ipinfo.io/{ip}/json"),
        asn_lookup_field=os.getenv("ASN_LOOKUP_FIELD", "org"),
        asn_lookup_timeout=float(os.getenv("ASN_LOOKUP_TIMEOUT", "2.0")),
        asn_cache_ttl_seconds=_env_int("ASN_CACHE_TTL_SECONDS", 3600),
        country_header=os.getenv("COUNTRY_HEADER", "x-vercel-ip-country").lower(),
        excluded_paths=frozenset(_env_list("GUARD_EXCLUDED_PATHS", EXCLUDED_PATHS)),
        redis_url=os.getenv("REDIS_URL") or None,
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
        telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID") or None,
    )
