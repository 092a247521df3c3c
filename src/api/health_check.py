from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from security.errors import StoreUnavailable

# Khai báo router cho các probe của hạ tầng (không đi qua guard)
router = APIRouter(
    tags= ["Health"]
)


@router.get("/healthz", summary="Liveness probe")
async def healthz():
    """
    Kiểm tra sống/chết cơ bản của tiến trình.
    """
    return {"status": "ok"}

@router.get("/readyz", summary="Readiness probe")
async def readyz(request: Request):
    """
    Kiểm tra sẵn sàng: kết nối Redis của guard.
    - Chưa cấu hình Redis: guard tắt, vẫn trả 200 với redis = "disabled"
    - Redis lỗi: trả 503
    """
    checks = {}
    store = getattr(request.app.state, "store", None)

    if store is None:
        checks["redis"] = "disabled"
    else:
        try:
            await store.ping()
            checks["redis"] = "ok"
        except StoreUnavailable as e:
            checks["redis"] = f"error: {e.cause.__class__.__name__}"

    ok = all(val in ("ok", "disabled") for val in checks.values())
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"status": "ok" if ok else "error", "checks": checks},
    )
