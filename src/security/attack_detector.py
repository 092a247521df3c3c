from typing import Tuple
from log.system_log import system_logger
from security.config import GuardConfig
from security.counter_store import CounterStore, log_store_error
from security.errors import StoreUnavailable
from security.keyspace import k_attack_blocked, k_attack_notify, k_attack_total

"""
Phát hiện tấn công (burst detection):
- Đếm TẤT CẢ request vào trong cửa sổ ATTACK_WINDOW_SECONDS (kể cả request sẽ bị chặn sau đó).
- Đếm riêng số request bị chặn (Geo/ASN/UA/RateLimit).
- Nếu tổng > ngưỡng: gửi 1 thông báo, sau đó khoá thông báo trong NOTIFY_COOLDOWN_SECONDS.

Hai bộ đếm không được đọc/ghi trong cùng 1 transaction nên passed = total - blocked chỉ là xấp xỉ
(có thể lệch, thậm chí âm khi nhiều request chạy song song).
"""


class AttackDetector:

    def __init__(self, store: CounterStore, config: GuardConfig, notifier):
        self._store = store
        self._config = config
        self._notifier = notifier

    async def record_and_check(self) -> Tuple[int, int]:
        """
        Tăng bộ đếm tổng và đọc bộ đếm bị chặn trong cùng 1 round trip.
        Redis lỗi / không có kết quả -> (0, 0): không bao giờ chặn request chỉ vì lỗi giám sát.
        """
        try:
            res = await self._store.incr_and_read(
                k_attack_total(), k_attack_blocked(), self._config.attack_window_seconds
            )
        except StoreUnavailable as ex:
            log_store_error(ex.cause, "record_and_check")
            return 0, 0

        if res is None:
            system_logger.error("Redis pipeline returned no result in record_and_check")
            return 0, 0

        total, blocked_raw = res
        try:
            blocked = int(blocked_raw) if blocked_raw is not None else 0
        except ValueError:
            blocked = 0
        return total, blocked

    async def record_blocked(self) -> None:
        """Tăng bộ đếm bị chặn. Chỉ là số liệu giám sát: lỗi thì log rồi bỏ qua."""
        try:
            await self._store.incr_with_window(k_attack_blocked(), self._config.attack_window_seconds)
        except StoreUnavailable as ex:
            log_store_error(ex.cause, "record_blocked")

    def is_attack(self, total: int) -> bool:
        return total > self._config.attack_threshold

    def attack_strength(self, total: int) -> float:
        """Số request/giây trung bình trong cửa sổ."""
        return total / self._config.attack_window_seconds

    def format_alert(self, total: int, blocked: int) -> str:
        passed = total - blocked  # Xấp xỉ
        window = self._config.attack_window_seconds
        return (
            "🚨 *Phát hiện tấn công vào website!* 🚨\n"
            "\n"
            f"- *Cường độ tấn công:* ~{self.attack_strength(total):.1f} request/giây\n"
            f"- *Tổng request trong ~{window} giây:* {total}\n"
            f"- *Bị chặn (Geo/ASN/UA/RateLimit):* {blocked}\n"
            f"- *Đã đi qua tới website:* {passed}\n"
            "\n"
            "Hệ thống đã tự động áp dụng các biện pháp giới hạn."
        )

    async def check_and_alert(self, total: int, blocked: int) -> bool:
        """
        Nếu tổng vượt ngưỡng và chưa có cờ chống spam -> gửi thông báo.
        Cờ được tạo bằng SET NX EX nên dù nhiều request/nhiều node cùng vượt ngưỡng,
        chỉ 1 request "giành" được quyền gửi trong mỗi chu kỳ cooldown.
        Trả True nếu request này đã gửi thông báo.
        """
        if not self.is_attack(total):
            return False

        try:
            claimed = await self._store.claim_flag(k_attack_notify(), self._config.notify_cooldown_seconds)
        except StoreUnavailable as ex:
            log_store_error(ex.cause, "notify_flag")
            return False

        if not claimed:
            return False

        system_logger.warning("Attack detected: total=%s blocked=%s in %ss window",
                              total, blocked, self._config.attack_window_seconds)
        self._notifier.send(self.format_alert(total, blocked))
        return True
