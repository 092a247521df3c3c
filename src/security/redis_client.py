from typing import Optional
import redis.asyncio as redis   # Thư viện redis-py, bản asyncio (pip install redis)
"""
Đầu tiên cần chạy Redis server (có thể chạy local hoặc Docker).
Với Docker: `docker run -p 6379:6379 -it redis:latest`

Sau đó khai báo REDIS_URL trong .env, ví dụ: REDIS_URL=redis://localhost:6379/0
Nếu KHÔNG khai báo REDIS_URL thì guard sẽ bị tắt (cho qua toàn bộ request),
vì không có nơi lưu trạng thái chung thì không thể đếm/giới hạn một cách an toàn.

Guard chạy trong middleware async nên dùng redis.asyncio để không chặn event loop.
Lưu ý: redis-py mặc định trả về bytes, ở đây giữ decode_responses=False và tự decode khi cần.
Kết nối dùng connection pool để tái sử dụng TCP giữa các request.
"""

# # Hàm trả về đối tượng Redis async dùng connection pool (tái sử dụng TCP)
def get_redis(url: Optional[str]) -> Optional[redis.Redis]:
    """
    Tạo client Redis từ REDIS_URL (ví dụ: redis://redis:6379/0).
    Trả None nếu chưa cấu hình URL.
    """
    if not url:
        return None

    pool = redis.ConnectionPool.from_url(                     # # Tạo pool kết nối từ URL
        url,
        socket_keepalive=True,                                # # Giữ kết nối lâu dài (keepalive)
        socket_timeout=2.0,                                   # # Timeout thao tác (giây)
        socket_connect_timeout=2.0,                           # # Timeout kết nối (giây)
        max_connections=200,                                  # # Giới hạn số kết nối đồng thời từ app
        health_check_interval=30,                             # # Ping định kỳ phát hiện kết nối chết
        decode_responses=False                                # # Trả về bytes (nhanh, ít decode)
    )
    return redis.Redis(connection_pool=pool)                  # # Tạo client trỏ vào pool và trả về
