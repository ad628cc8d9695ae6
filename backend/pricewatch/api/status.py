from fastapi import APIRouter, Depends, HTTPException

from pricewatch.scheduler import PriceCheckScheduler, get_scheduler

router = APIRouter()


@router.get("/api/status")
async def scheduler_status(scheduler: PriceCheckScheduler = Depends(get_scheduler)):
    return scheduler.status()


@router.post("/api/check-prices")
async def trigger_price_check(scheduler: PriceCheckScheduler = Depends(get_scheduler)):
    """
    Start a full price check in the background.

    A request that arrives while a check is running is dropped.
    """
    started = scheduler.trigger_sweep_now()
    return {
        "success": started,
        "status": "started" if started else "already_running",
    }


@router.post("/api/destinations/{destination_id}/check")
async def check_destination(
    destination_id: int,
    scheduler: PriceCheckScheduler = Depends(get_scheduler)
):
    """Check one destination now, outside the scheduled sweeps."""
    result = await scheduler.check_destination_now(destination_id)
    if result.get("status") == "not_found":
        raise HTTPException(status_code=404, detail="Destination not found")
    return result
