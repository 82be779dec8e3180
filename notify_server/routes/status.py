"""
MODULE OVERVIEW:
Status and statistics queries. Read-only: nothing here touches pipeline state.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from notify_shared.models import MessageStatus, QueueStats
from notify_shared.route_utils import get_pipeline

router = APIRouter(prefix="/api")


@router.get("/status/{mensagem_id}", response_model=MessageStatus)
async def get_message_status(mensagem_id: str, pipeline=Depends(get_pipeline)):
    status = pipeline.get_status(mensagem_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return MessageStatus(mensagem_id=mensagem_id, status=status)


@router.get("/status", response_model=List[MessageStatus])
async def get_all_message_statuses(pipeline=Depends(get_pipeline)):
    return pipeline.get_all_statuses()


@router.get("/queue/stats", response_model=QueueStats)
async def get_queue_stats(pipeline=Depends(get_pipeline)):
    return pipeline.get_queue_stats()
