"""Public webhook receiver."""
from fastapi import APIRouter, Depends, Request
from ..models import InboxStatus, WebhookReceipt
from ..services.inbox_service import InboxService, get_service

router = APIRouter(prefix="/in", tags=["webhooks"])


def client_address(request: Request) -> str:
    """Origin address, preferring proxy-supplied headers."""
    for header in ("cf-connecting-ip", "x-forwarded-for", "x-real-ip"):
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


@router.post("/{inbox_id}", response_model=WebhookReceipt)
async def receive_webhook(
    inbox_id: str,
    request: Request,
    service: InboxService = Depends(get_service),
):
    origin = client_address(request)
    service.admit(service.webhook_limiter, origin, scope="webhook")

    body = await request.body()
    headers = {key.lower(): value for key, value in request.headers.items()}
    return await service.receive_webhook(
        inbox_id,
        origin,
        headers,
        body,
        content_type=request.headers.get("content-type", ""),
    )


@router.get("/{inbox_id}", response_model=InboxStatus)
async def check_inbox(
    inbox_id: str,
    service: InboxService = Depends(get_service),
):
    return await service.check_inbox_alive(inbox_id)
