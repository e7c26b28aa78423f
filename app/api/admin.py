"""
Admin API Endpoints
Subscription date rollover job status and manual trigger
"""
from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from app.api.deps import get_current_user, get_subscription_job
from app.models import User
from app.services.subscription_job import SubscriptionUpdateJob

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/job-status")
def job_status(
    job: SubscriptionUpdateJob = Depends(get_subscription_job),
    current_user: User = Depends(get_current_user)
):
    return job.get_stats()


@router.post("/trigger-update")
async def trigger_update(
    job: SubscriptionUpdateJob = Depends(get_subscription_job),
    current_user: User = Depends(get_current_user)
):
    """Run the rollover job now"""
    result = await run_in_threadpool(job.run_update)
    return {"message": "Subscription update job triggered", "result": result, "stats": job.get_stats()}
