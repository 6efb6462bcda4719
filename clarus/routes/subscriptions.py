"""
Subscription routes: podcast and YouTube feed subscriptions.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..auth import get_current_user, verify_api_key
from ..schemas import SubscribeRequest, SubscriptionResponse
from ..services import SubscriptionServiceDep

router = APIRouter(
    prefix="/subscriptions",
    tags=["subscriptions"],
    dependencies=[Depends(verify_api_key)]
)


@router.get("")
async def list_subscriptions(
    service: SubscriptionServiceDep,
    user_id: Annotated[int, Depends(get_current_user)],
    feed_type: str | None = Query(default=None, pattern="^(podcast|youtube)$"),
) -> list[SubscriptionResponse]:
    """List the caller's subscriptions."""
    return [SubscriptionResponse.from_db(s) for s in service.list_subscriptions(user_id, feed_type)]


@router.post("", status_code=201)
async def subscribe(
    request: SubscribeRequest,
    service: SubscriptionServiceDep,
    user_id: Annotated[int, Depends(get_current_user)],
) -> SubscriptionResponse:
    """Subscribe to a feed; the feed must be reachable and parse."""
    subscription = await service.subscribe(
        user_id,
        request.feed_type,
        request.feed_url,
        name=request.name,
        auth_header=request.auth_header,
        check_frequency_hours=request.check_frequency_hours,
    )
    return SubscriptionResponse.from_db(subscription)


@router.post("/{subscription_id}/reactivate")
async def reactivate_subscription(
    subscription_id: int,
    service: SubscriptionServiceDep,
    user_id: Annotated[int, Depends(get_current_user)],
) -> SubscriptionResponse:
    """Re-enable a subscription deactivated after repeated failures."""
    return SubscriptionResponse.from_db(service.reactivate(subscription_id, user_id))


@router.delete("/{subscription_id}")
async def unsubscribe(
    subscription_id: int,
    service: SubscriptionServiceDep,
    user_id: Annotated[int, Depends(get_current_user)],
) -> dict:
    """Remove a subscription and its discovered items."""
    service.unsubscribe(subscription_id, user_id)
    return {"success": True}
