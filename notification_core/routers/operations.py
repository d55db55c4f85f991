"""Operations router: a thin HTTP mapping onto `NotificationOperations`."""

from __future__ import annotations

from typing import List, Literal, Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from notification_core.services.operations import NotificationOperations

router = APIRouter(prefix="/notifications/ops", tags=["Notification Operations"])


class AchievementCheckRequest(BaseModel):
    user_ids: Optional[List[int]] = None


class TokenCleanupRequest(BaseModel):
    user_id: Optional[int] = None


class EmergencyNotificationRequest(BaseModel):
    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    target_users: Union[Literal["all"], List[int]] = "all"


def get_operations(request: Request) -> NotificationOperations:
    return request.app.state.operations


@router.post("/achievements/check")
async def trigger_achievement_check(
    payload: AchievementCheckRequest,
    operations: NotificationOperations = Depends(get_operations),
):
    return await operations.trigger_achievement_check(payload.user_ids)


@router.post("/tokens/cleanup")
async def trigger_device_token_cleanup(
    payload: TokenCleanupRequest,
    operations: NotificationOperations = Depends(get_operations),
):
    return await operations.trigger_device_token_cleanup(payload.user_id)


@router.get("/status")
def get_system_status(operations: NotificationOperations = Depends(get_operations)):
    return operations.get_system_status().as_dict()


@router.get("/jobs")
def get_job_status(operations: NotificationOperations = Depends(get_operations)):
    return operations.get_job_status()


@router.post("/jobs/{name}/run")
async def run_job_now(name: str, operations: NotificationOperations = Depends(get_operations)):
    result = await operations.run_job_now(name)
    return result.as_dict()


@router.post("/jobs/{name}/start")
def start_job(name: str, operations: NotificationOperations = Depends(get_operations)):
    job = operations.scheduler.start(name)
    return {"name": job.name, "state": job.state.value}


@router.post("/jobs/{name}/stop")
def stop_job(name: str, operations: NotificationOperations = Depends(get_operations)):
    job = operations.scheduler.stop(name)
    return {"name": job.name, "state": job.state.value}


@router.get("/jobs/{name}/next")
def next_execution_times(
    name: str,
    count: int = Query(5, ge=1, le=50),
    operations: NotificationOperations = Depends(get_operations),
):
    times = operations.next_execution_times(name, count)
    return {"name": name, "next_executions": [moment.isoformat() for moment in times]}


@router.post("/emergency")
async def send_emergency_notification(
    payload: EmergencyNotificationRequest,
    operations: NotificationOperations = Depends(get_operations),
):
    return await operations.send_emergency_notification(
        payload.title, payload.body, payload.target_users
    )
