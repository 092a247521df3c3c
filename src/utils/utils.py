from ipaddress import ip_address
from typing import Optional, Tuple

def _norm_ip(ip_raw: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Chuẩn hoá chuỗi IP về dạng hợp lệ.
    Trả (True, ip_chuẩn) nếu hợp lệ, (False, giá trị gốc) nếu không parse được.
    """
    # Kiểm tra giá trị truyền vào tồn tại hay không và có phải là chuỗi string hay không
    if not ip_raw or not isinstance(ip_raw, str):
        return False, None

    try:
        return True, str(ip_address(ip_raw.strip()))  # Parse IPv4/IPv6; sai sẽ ném ValueError
    except ValueError:
        # Nếu không parse được, trả nguyên để không crash
        return False, ip_raw

def is_public_ip(ip_raw: Optional[str]) -> bool:
    """
    True nếu là IP công khai (có thể tra cứu ASN).
    Loopback, dải private, link-local, reserved, multicast, unspecified -> False.
    """
    is_ip, norm = _norm_ip(ip_raw)
    if not is_ip:
        return False

    ip = ip_address(norm)
    return not (
        ip.is_loopback or ip.is_private or ip.is_link_local
        or ip.is_reserved or ip.is_multicast or ip.is_unspecified
    )
