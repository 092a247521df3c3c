import asyncio
from dataclasses import replace

from security.attack_detector import AttackDetector
from security.keyspace import k_attack_blocked, k_attack_notify, k_attack_total


def _detector(store, config, notifier):
    return AttackDetector(store, config, notifier)


def test_record_and_check_counts_total_and_reads_blocked(store, config, notifier, fake_redis):
    """
    Mỗi lần gọi: total tăng 1, blocked chỉ được đọc (không tăng), cả 2 chỉ trong 1 round trip.
    """
    detector = _detector(store, config, notifier)

    assert asyncio.run(detector.record_and_check()) == (1, 0)
    asyncio.run(detector.record_blocked())
    assert asyncio.run(detector.record_and_check()) == (2, 1)
    assert asyncio.run(detector.record_and_check()) == (3, 1)

    # 3 lần record_and_check + 1 lần record_blocked = 4 pipeline
    assert fake_redis.pipelines_executed == 4
    assert fake_redis.ttl(k_attack_total()) > 0
    assert fake_redis.ttl(k_attack_blocked()) > 0


def test_window_is_not_refreshed_by_each_hit(store, config, notifier, clock):
    """
    EXPIRE NX: TTL chỉ đặt ở request đầu tiên -> cửa sổ cố định 60s rồi tự reset về 0.
    """
    detector = _detector(store, config, notifier)

    assert asyncio.run(detector.record_and_check())[0] == 1
    clock.advance(59)
    assert asyncio.run(detector.record_and_check())[0] == 2
    clock.advance(1.5)
    # Key đã hết hạn (60s tính từ request đầu tiên) -> bắt đầu lại từ 1
    assert asyncio.run(detector.record_and_check())[0] == 1


def test_store_failure_fails_open(store, config, notifier, fake_redis):
    fake_redis.fail = True
    detector = _detector(store, config, notifier)

    assert asyncio.run(detector.record_and_check()) == (0, 0)
    # record_blocked chỉ log, không ném lỗi
    asyncio.run(detector.record_blocked())
    assert asyncio.run(detector.check_and_alert(20_000, 0)) is False
    assert notifier.messages == []


def test_no_alert_below_or_at_threshold(store, config, notifier):
    detector = _detector(store, config, notifier)

    assert asyncio.run(detector.check_and_alert(10_000, 0)) is False
    assert notifier.messages == []


def test_debounce_one_alert_per_cooldown(store, config, notifier, clock, fake_redis):
    """
    2 request liên tiếp vượt ngưỡng trong thời gian cooldown -> đúng 1 thông báo.
    Request thứ 3 sau khi hết cooldown -> thông báo thứ 2.
    """
    detector = _detector(store, config, notifier)

    assert asyncio.run(detector.check_and_alert(10_001, 10)) is True
    clock.advance(5)
    assert asyncio.run(detector.check_and_alert(10_002, 10)) is False
    assert len(notifier.messages) == 1
    assert 0 < fake_redis.ttl(k_attack_notify()) <= config.notify_cooldown_seconds

    clock.advance(config.notify_cooldown_seconds)
    assert asyncio.run(detector.check_and_alert(10_500, 10)) is True
    assert len(notifier.messages) == 2


def test_burst_scenario_threshold_10000_window_60(store, config, notifier, clock, fake_redis):
    """
    threshold = 10000, window = 60s, cooldown = 30s:
    request thứ 10001 trong cửa sổ -> 1 thông báo với cường độ total/60;
    request thứ 10002 sau 5 giây -> không gửi thêm.
    """
    detector = _detector(store, config, notifier)

    # Giả lập 10000 request đã được đếm trong cửa sổ hiện tại
    fake_redis._data[k_attack_total()] = b"10000"
    fake_redis._expire_at[k_attack_total()] = clock() + 60

    total, blocked = asyncio.run(detector.record_and_check())
    assert total == 10_001
    asyncio.run(detector.check_and_alert(total, blocked))
    assert len(notifier.messages) == 1
    assert f"~{10_001 / 60:.1f} request/giây" in notifier.messages[0]
    assert "166.7" in notifier.messages[0]

    clock.advance(5)
    total, blocked = asyncio.run(detector.record_and_check())
    assert total == 10_002
    asyncio.run(detector.check_and_alert(total, blocked))
    assert len(notifier.messages) == 1


def test_cooldown_shorter_than_window_allows_several_alerts(store, config, notifier, clock):
    """Cooldown độc lập với cửa sổ đếm: tấn công kéo dài -> nhiều thông báo trong 1 cửa sổ."""
    detector = _detector(store, replace(config, notify_cooldown_seconds=10), notifier)

    for _ in range(3):
        asyncio.run(detector.check_and_alert(20_000, 0))
        clock.advance(10)

    assert len(notifier.messages) == 3


def test_format_alert_contents(store, config, notifier):
    detector = _detector(store, config, notifier)

    message = detector.format_alert(total=12_000, blocked=2_500)

    assert "~200.0 request/giây" in message
    assert "*Tổng request trong ~60 giây:* 12000" in message
    assert "*Bị chặn (Geo/ASN/UA/RateLimit):* 2500" in message
    assert "*Đã đi qua tới website:* 9500" in message


def test_passed_count_is_approximate_and_may_go_negative(store, config, notifier):
    """Hai bộ đếm không đọc nguyên tử cùng nhau: passed = total - blocked có thể âm."""
    detector = _detector(store, config, notifier)

    message = detector.format_alert(total=10_001, blocked=10_050)

    assert "*Đã đi qua tới website:* -49" in message
