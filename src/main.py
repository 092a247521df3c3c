from fastapi import FastAPI# pip install "fastapi[standard]"
import uvicorn
import os
import time
from contextlib import asynccontextmanager
import httpx
from api import health_check
from log import logging_config, system_log
from log.system_log import system_logger
from middlerware.edge_guard import create_edge_guard
from security.config import GuardConfig, load_config
from security.counter_store import CounterStore
from security.redis_client import get_redis
from services.notifier import TelegramNotifier
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại


PORT_HOST = os.getenv("PORT_HOST", "8000")

# Ép kiểu để port là số nguyên
PORT = int(PORT_HOST)


def create_app(config: GuardConfig = None, redis=None, http_client: httpx.AsyncClient = None,
               notifier: TelegramNotifier = None, clock=time.time) -> FastAPI:
    """
    Tạo app FastAPI đã gắn edge guard.
    Các tham số redis/http_client/notifier/clock dùng để thay thế khi test; bình thường để None.
    """
    config = config or load_config()
    redis = redis if redis is not None else get_redis(config.redis_url)
    http_client = http_client or httpx.AsyncClient(timeout=config.asn_lookup_timeout)
    notifier = notifier or TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)

    guard = create_edge_guard(config, redis, http_client, notifier, clock=clock)
    store = CounterStore(redis) if redis is not None else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Các câu lệnh được thực hiện khi khởi động: chạy worker gửi thông báo
        notifier.start()
        system_logger.info("Edge guard started (enabled=%s)", guard.enabled)
        yield
        # Các câu lệnh sau yield được thực hiện khi kết thúc chương trình
        await notifier.stop()
        await http_client.aclose()
        if store is not None:
            await store.close()

    app = FastAPI(
        docs_url=None,  # Guard đứng trước origin, không cần Swagger UI
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.guard = guard
    app.state.notifier = notifier

    # # Đăng ký middleware bảo vệ (đặt càng sớm càng tốt)
    app.middleware("http")(guard.dispatch)

    # Thêm các endpoint ở đây
    app.include_router(health_check.router)

    return app


if __name__ == "__main__":
    # Khởi động thread nền tạo file log cho ngày mới (chỉ gọi 1 lần ở main)
    system_log.start_rotation_thread()
    logging_config.start_rotation_thread()

    uvicorn.run(create_app(), host="0.0.0.0", port=PORT)
