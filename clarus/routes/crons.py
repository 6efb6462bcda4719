"""
Scheduled job endpoints, called by an external cron with the cron secret.
"""

from fastapi import APIRouter, Depends

from ..auth import verify_cron_secret
from ..services import FeedPollerDep

router = APIRouter(
    prefix="/crons",
    tags=["crons"],
    dependencies=[Depends(verify_cron_secret)]
)


@router.get("/check-podcast-feeds")
async def check_podcast_feeds(poller: FeedPollerDep) -> dict:
    """Poll due podcast subscriptions, then reconcile stuck transcriptions."""
    report = await poller.poll("podcast")
    return report.to_dict()


@router.get("/check-youtube-feeds")
async def check_youtube_feeds(poller: FeedPollerDep) -> dict:
    """Poll due YouTube channel subscriptions."""
    report = await poller.poll("youtube")
    return report.to_dict()
