"""
MODULE OVERVIEW:
Intake and record routes.

WHAT IS HAPPENING HERE:
Intake never waits for processing. `/api/notificar` publishes a direct message
and answers 202 straight away; `/api/notifications` stores a PENDING record,
publishes it and answers 201. The outcome shows up later on the status
endpoints and on the observer feed. With no broker channel both answer 503.
"""
import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from notify_shared.errors import ChannelUnavailableError, DuplicateMessageError
from notify_shared.models import (
    NotificationCreate,
    NotificationRecord,
    NotifyAccepted,
    NotifyRequest,
)
from notify_shared.route_utils import get_pipeline

router = APIRouter(prefix="/api")


@router.post("/notificar", status_code=202, response_model=NotifyAccepted)
async def notificar(body: NotifyRequest, pipeline=Depends(get_pipeline)):
    mensagem_id = body.mensagem_id or str(uuid.uuid4())
    try:
        await pipeline.publish_direct(mensagem_id, body.conteudo_mensagem)
    except DuplicateMessageError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ChannelUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return NotifyAccepted(mensagem_id=mensagem_id)


@router.post("/notifications", status_code=201, response_model=NotificationRecord)
async def create_notification(body: NotificationCreate, pipeline=Depends(get_pipeline)):
    try:
        return await pipeline.create_notification(body)
    except ChannelUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/notifications", response_model=List[NotificationRecord])
async def list_notifications(pipeline=Depends(get_pipeline)):
    return pipeline.list_notifications()


@router.get("/notifications/{notification_id}", response_model=NotificationRecord)
async def get_notification(notification_id: str, pipeline=Depends(get_pipeline)):
    record = pipeline.get_notification(notification_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return record
