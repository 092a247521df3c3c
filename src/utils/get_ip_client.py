from dataclasses import dataclass
from typing import Optional
from fastapi import Request

# IP mặc định khi không xác định được client (giống môi trường chạy local)
DEFAULT_CLIENT_IP = "127.0.0.1"


@dataclass(frozen=True)
class ClientIdentity:
    """
    Thông tin nhận dạng client của 1 request:
    - ip: IP công khai của client
    - country: mã quốc gia 2 ký tự do nền tảng edge cung cấp (có thể không có)
    - user_agent: chuỗi User-Agent (có thể rỗng)
    """
    ip: str
    country: Optional[str]
    user_agent: str


def get_client_ip(request: Request) -> str:
    """
    Nhận 1 request từ FastAPI và trả về địa chỉ IP của client
    - Nếu có X-Forwarded-For: lấy phần tử đầu (client gốc), format: "client, proxy1, proxy2"
    - Else nếu có X-Real-IP: dùng giá trị này
    - Else: 127.0.0.1
    """
    xff = request.headers.get("x-forwarded-for")
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return DEFAULT_CLIENT_IP


def get_country(request: Request, header_name: str) -> Optional[str]:
    """Mã quốc gia từ header geo của nền tảng (vd: x-vercel-ip-country, cf-ipcountry)."""
    country = (request.headers.get(header_name) or "").strip().upper()
    return country or None


def build_identity(request: Request, country_header: str) -> ClientIdentity:
    return ClientIdentity(
        ip=get_client_ip(request),
        country=get_country(request, country_header),
        user_agent=request.headers.get("user-agent", ""),
    )
