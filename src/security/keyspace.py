"""
Tập trung hoá việc tạo TÊN KHOÁ (key) Redis.
Mọi nơi khác chỉ GỌI HÀM ở đây -> nếu đổi format key, ta chỉ sửa file này.
"""

# ===== Bộ đếm phát hiện tấn công (cửa sổ trượt theo TTL) =====

def k_attack_total() -> str:
    """Đếm tổng request trong cửa sổ phát hiện tấn công (TTL = cửa sổ)."""
    return "attack:total"

def k_attack_blocked() -> str:
    """Đếm số request bị chặn (Geo/ASN/UA/RateLimit) trong cùng cửa sổ."""
    return "attack:blocked"

# ===== NOTIFY =====

def k_attack_notify() -> str:
    """Cờ chống spam thông báo: còn key -> không gửi thêm (1 thông báo/chu kỳ cooldown)."""
    return "attack:notify_flag"

# ===== Cache ASN =====

def k_asn(ip: str) -> str:
    """ASN đã tra cứu của 1 IP (có TTL)."""
    return f"asn:ip:{ip}"

# ===== Rate-limit (sliding window) =====
# Nếu sau này dùng Redis Cluster, thay đổi giá trị trả về thành:
# return f"ratelimit:{{{ip}}}"

def k_rl(ip: str, prefix: str = "ratelimit") -> str:
    """
    Key ZSET cho sliding-window rate-limit của 1 IP.
    Ví dụ: ratelimit:203.0.113.10
    """
    return f"{prefix}:{ip}"
