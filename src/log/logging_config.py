import logging
import datetime as _dt
import os
import time
import threading
import shutil
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại


# Đường dẫn thư mục lưu trữ file log quyết định của guard
LOG_DIRECTORY = os.getenv("LOG_DIRECTORY", "log")

# Tạo thư mục nếu chưa có
Path(LOG_DIRECTORY).mkdir(parents=True, exist_ok=True)


class CustomFilter(logging.Filter):
    def filter(self, record):
        # Các trường sẽ có trong log, nếu ko có giá trị thì mặc định là "None"
        record.ip = getattr(record, "ip", "None")
        record.country = getattr(record, "country", "None")
        record.asn = getattr(record, "asn", "None")
        record.method = getattr(record, "method", "None")
        record.api_name = getattr(record, "api_name", "None")
        record.verdict = getattr(record, "verdict", "None")
        record.reason = getattr(record, "reason", "None")
        record.status = getattr(record, "status", "None")
        record.duration_ms = getattr(record, "duration_ms", "None")
        record.user_agent = getattr(record, "user_agent", "None")
        return True

def _today_str():
    # Định dạng thư mục theo ngày: DD-MM-YY
    return _dt.datetime.now().strftime("%d-%m-%y")

def _log_file_path(day_str=None):
    """
    Tạo thư mục logs/<DD-MM-YY>/ nếu chưa có.
    Trả về đường dẫn file 'edge_log.log' bên trong.
    Có fallback khi lỗi IO.
    """
    try:
        day = day_str or _today_str()
        log_dir = os.path.join(LOG_DIRECTORY, day)
        os.makedirs(log_dir, exist_ok=True)
        return os.path.join(log_dir, "edge_log.log")

    except OSError:
        fb_dir = os.path.join(LOG_DIRECTORY, "fallback")
        os.makedirs(fb_dir, exist_ok=True)
        return os.path.join(fb_dir, "edge_log.log")

def _remove_old_logs(logs_root=LOG_DIRECTORY, max_days=30):
    """
    Xoá thư mục ngày cũ hơn max_days.
    Bỏ qua thư mục không đúng định dạng DD-MM-YY (vd: 'fallback', 'system_log').
    """
    if not os.path.exists(logs_root):
        return

    now = _dt.datetime.now()
    for entry in os.listdir(logs_root):
        entry_path = os.path.join(logs_root, entry)
        if not os.path.isdir(entry_path):
            continue
        try:
            folder_date = _dt.datetime.strptime(entry, "%d-%m-%y")
        except ValueError:
            continue

        if (now - folder_date).days > max_days:
            shutil.rmtree(entry_path, ignore_errors=True)


# =========================
# Cấu hình logger quyết định & thread xoay theo ngày
# =========================

# Formatter: mỗi request được guard xử lý là 1 dòng
_formatter = logging.Formatter(
    "%(asctime)s - %(ip)s - %(country)s - asn: %(asn)s - %(method)s %(api_name)s - "
    "verdict: %(verdict)s - reason: %(reason)s - status: %(status)s - "
    "duration: %(duration_ms)s ms - ua: %(user_agent)s",
    datefmt="%d-%m-%Y %H:%M:%S",
)

# Logger quyết định của guard
logger = logging.getLogger("edge_logger")
logger.setLevel(logging.INFO)
logger.propagate = False  # Không đẩy lên root

_file_handler_lock = threading.Lock()
_current_day = _today_str()
_file_handler = logging.FileHandler(_log_file_path(_current_day), encoding="utf-8")
_file_handler.addFilter(CustomFilter())
_file_handler.setFormatter(_formatter)
logger.addHandler(_file_handler)


def _rotate_if_new_day():
    """
    Kiểm tra nếu sang ngày mới:
    - Gỡ handler cũ, đóng file.
    - Dọn rác thư mục cũ.
    - Tạo handler mới cho ngày mới.
    Dùng lock để thay handler an toàn.
    """
    global _current_day, _file_handler
    day_now = _today_str()
    if day_now == _current_day:
        return

    with _file_handler_lock:
        # Kiểm tra lại trong lock để tránh race
        if day_now == _current_day:
            return

        logger.removeHandler(_file_handler)
        _file_handler.close()

        _remove_old_logs(max_days=30)

        _current_day = day_now
        new_handler = logging.FileHandler(_log_file_path(_current_day), encoding="utf-8")
        new_handler.addFilter(CustomFilter())
        new_handler.setFormatter(_formatter)
        logger.addHandler(new_handler)
        _file_handler = new_handler


def _rotation_thread():
    """
    Thread nền: mỗi 1 tiếng kiểm tra xem có sang ngày mới chưa.
    """
    while True:
        try:
            _rotate_if_new_day()
        except Exception:
            # Tuyệt đối không để thread chết âm thầm vì exception
            logging.getLogger("system_logger").exception("Xoay file edge log thất bại")

        time.sleep(3600)


def start_rotation_thread() -> threading.Thread:
    t = threading.Thread(target=_rotation_thread, name="DailyEdgeLogRotationThread", daemon=True)
    t.start()
    return t
