from fastapi import APIRouter, Depends
from typing import Dict

from pricewatch.services.notification import Notifier, get_global_notifier

router = APIRouter()


@router.post("/notifications/test")
async def test_notification(notifier: Notifier = Depends(get_global_notifier)) -> Dict:
    """Send a test message through the configured channel."""
    success = await notifier.send_test_notification()
    return {
        "success": success,
        "channel": notifier.name,
    }
