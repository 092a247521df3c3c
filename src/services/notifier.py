import asyncio
from typing import Optional
import httpx
from log.system_log import system_logger

"""
Gửi cảnh báo qua Telegram Bot API.
- send(): chỉ đưa tin nhắn vào hàng đợi rồi trả về ngay (fire-and-forget), request không phải chờ.
- Worker nền (khởi động trong lifespan của app) lấy tin nhắn ra và gọi deliver().
- Lỗi mạng / Telegram trả lỗi: chỉ log, không ảnh hưởng tới quyết định của guard.

Thông tin bot lấy từ biến môi trường TELEGRAM_BOT_TOKEN và TELEGRAM_CHAT_ID.
"""

TELEGRAM_API_BASE = "https://api.telegram.org"
TIMEOUT = httpx.Timeout(10.0)


class TelegramNotifier:

    def __init__(self, bot_token: Optional[str], chat_id: Optional[str],
                 client: Optional[httpx.AsyncClient] = None,
                 api_base: str = TELEGRAM_API_BASE, queue_size: int = 100):
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._client = client
        self._owns_client = client is None
        self._api_base = api_base.rstrip("/")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._worker: Optional[asyncio.Task] = None
        self._warned_unconfigured = False

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    @property
    def pending(self) -> int:
        """Số tin nhắn đang chờ gửi."""
        return self._queue.qsize()

    def send(self, message: str) -> None:
        """
        Đưa tin nhắn vào hàng đợi, không chờ gửi.
        Chưa cấu hình bot -> bỏ qua (chỉ cảnh báo 1 lần).
        """
        if not self.enabled:
            if not self._warned_unconfigured:
                self._warned_unconfigured = True
                system_logger.warning("Telegram credentials are not set. Cannot send notification.")
            return

        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            system_logger.error("Notification queue is full, dropping message")

    async def deliver(self, message: str) -> bool:
        """
        Gọi 1 lần tới sendMessage. Trả True nếu Telegram nhận tin (2xx).
        Mọi lỗi đều được log và bỏ qua.
        """
        if not self.enabled:
            return False

        url = f"{self._api_base}/bot{self._bot_token}/sendMessage"
        payload = {"chat_id": self._chat_id, "text": message, "parse_mode": "Markdown"}

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=TIMEOUT)

        try:
            response = await self._client.post(url, json=payload)
        except httpx.HTTPError as ex:
            system_logger.error("Failed to send Telegram message: %s", ex)
            return False

        if response.is_error:
            system_logger.error("Telegram API error %s: %s", response.status_code, response.text)
            return False
        return True

    async def run(self) -> None:
        """Vòng lặp worker: lấy tin nhắn trong hàng đợi và gửi lần lượt."""
        while True:
            message = await self._queue.get()
            try:
                await self.deliver(message)
            finally:
                self._queue.task_done()

    def start(self) -> asyncio.Task:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self.run(), name="telegram-notifier")
        return self._worker

    async def drain(self) -> None:
        """Chờ tới khi toàn bộ tin nhắn trong hàng đợi đã được xử lý (worker phải đang chạy)."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
