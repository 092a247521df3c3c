from typing import Optional
from fastapi import Request

# Lấy logger quyết định đã được cấu hình ở module logging_config
from log.logging_config import logger
from utils.get_ip_client import ClientIdentity

# Giới hạn độ dài User-Agent đem đi log để tránh phình log/disk
MAX_UA_LOG_CHARS = 512


def log_verdict(request: Request, identity: Optional[ClientIdentity], verdict: str,
                status: int, duration_ms: float, reason: Optional[str] = None,
                asn: Optional[int] = None) -> None:
    """
    Ghi 1 dòng log cho mỗi request đi qua guard.
    - verdict: allow / deny / error
    - reason: country / asn / user_agent / rate_limit / burst (nếu bị chặn)
    - asn: ASN đã tra được, "-" nếu chưa tra hoặc không tra được
    """
    ua = identity.user_agent if identity else request.headers.get("user-agent", "-")
    logger.info(
        "",
        extra={
            "ip": identity.ip if identity else "-",
            "country": (identity.country if identity else None) or "-",
            "asn": asn if asn is not None else "-",
            "method": request.method,
            "api_name": request.url.path,
            "verdict": verdict,
            "reason": reason or "-",
            "status": status,
            "duration_ms": f"{duration_ms:.2f}",
            "user_agent": (ua or "-")[:MAX_UA_LOG_CHARS],
        },
    )
