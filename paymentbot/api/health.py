from fastapi import APIRouter

from paymentbot.core.settings import settings

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health():
    return {"status": "ok", "app": settings.APP_NAME, "paymentsBackend": settings.PAYMENTS_BACKEND}
