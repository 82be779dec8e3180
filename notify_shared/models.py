"""
MODULE OVERVIEW:
The strictly typed data structures shared by the server, the CLI client and the
broker wire format, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
Three families of models live here:
  1. Queue envelopes: what travels through the broker as JSON bytes.
  2. HTTP schemas: what the intake and query endpoints accept and return.
  3. Broadcast events: what observers receive over WebSocket / SSE.
The direct-publish flow speaks Portuguese field names on the wire
(`mensagemId`, `conteudoMensagem`), so those models use aliases and every
serialization must pass `by_alias=True`.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (LifecycleStatus.COMPLETED, LifecycleStatus.FAILED)

    @classmethod
    def from_label(cls, label: "str | LifecycleStatus") -> "LifecycleStatus":
        """Accept canonical values, enum names and the Portuguese label set."""
        if isinstance(label, LifecycleStatus):
            return label
        key = str(label).strip()
        if key.upper() in STATUS_ALIASES:
            return STATUS_ALIASES[key.upper()]
        try:
            return cls(key.lower())
        except ValueError:
            raise ValueError(f"unknown lifecycle status label: {label!r}") from None


STATUS_ALIASES = {
    "ENVIADO": LifecycleStatus.PENDING,
    "PROCESSANDO": LifecycleStatus.PROCESSING,
    "PROCESSADO_SUCESSO": LifecycleStatus.COMPLETED,
    "FALHA_PROCESSAMENTO": LifecycleStatus.FAILED,
}

Priority = Literal["low", "medium", "high", "urgent"]


# ==========================
# QUEUE ENVELOPES
# ==========================
class DirectEnvelope(BaseModel):
    """Entrada message published by `/api/notificar`."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    mensagem_id: str = Field(alias="mensagemId", min_length=1)
    conteudo_mensagem: str = Field(alias="conteudoMensagem")
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def tracking_id(self) -> str:
        return self.mensagem_id


class RecordEnvelope(BaseModel):
    """Entrada message carrying a full notification record."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    recipient: str
    subject: str
    message: str
    priority: Priority = "medium"

    @property
    def tracking_id(self) -> str:
        return self.id


EntradaEnvelope = Union[DirectEnvelope, RecordEnvelope]


class StatusEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    mensagem_id: str = Field(alias="mensagemId", min_length=1)
    status: LifecycleStatus
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("status", mode="before")
    @classmethod
    def _accept_aliases(cls, value):
        return LifecycleStatus.from_label(value)


# ==========================
# RECORDS & HTTP SCHEMAS
# ==========================
class NotificationCreate(BaseModel):
    recipient: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    message: str = Field(min_length=1)
    priority: Priority = "medium"


class NotificationRecord(BaseModel):
    id: str
    recipient: str
    subject: str
    message: str
    priority: Priority
    status: LifecycleStatus = LifecycleStatus.PENDING
    created_at: datetime
    updated_at: datetime


class NotifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mensagem_id: str | None = Field(default=None, alias="mensagemId", min_length=1)
    conteudo_mensagem: str = Field(alias="conteudoMensagem", min_length=1)

    @field_validator("conteudo_mensagem")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("conteudoMensagem must not be blank")
        return value


class NotifyAccepted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mensagem_id: str = Field(alias="mensagemId")
    status: Literal["accepted"] = "accepted"
    message: str = "Request received and will be processed asynchronously"


class MessageStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mensagem_id: str = Field(alias="mensagemId")
    status: LifecycleStatus


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.processing + self.completed + self.failed


class ObserverStats(BaseModel):
    active_ws: int
    active_sse: int
    total_events_dispatched: int
    dropped_events: int
    uptime_s: float
    server_time: datetime


# ==========================
# BROADCAST EVENTS
# ==========================
# WHAT IS HAPPENING HERE:
# Every frame an observer receives carries a `type` discriminator, so the CLI
# client can parse any frame with a single TypeAdapter(BroadcastEvent).
class InitialDataEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["initial_data"] = "initial_data"
    notifications: list[NotificationRecord]
    statuses: list[MessageStatus]
    queue_stats: QueueStats = Field(alias="queueStats")
    timestamp: datetime = Field(default_factory=utcnow)


class StatusUpdateEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["status_update"] = "status_update"
    notification_id: str = Field(alias="notificationId")
    status: LifecycleStatus
    timestamp: datetime = Field(default_factory=utcnow)


class MessageStatusUpdateEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["message-status-update"] = "message-status-update"
    mensagem_id: str = Field(alias="mensagemId")
    status: LifecycleStatus
    timestamp: datetime = Field(default_factory=utcnow)


class QueueStatsEvent(BaseModel):
    type: Literal["queue_stats"] = "queue_stats"
    stats: QueueStats
    timestamp: datetime = Field(default_factory=utcnow)


class SystemEvent(BaseModel):
    type: Literal["system_event"] = "system_event"
    event: str
    details: str
    timestamp: datetime = Field(default_factory=utcnow)


class HeartbeatEvent(BaseModel):
    type: Literal["heartbeat"] = "heartbeat"
    timestamp: datetime = Field(default_factory=utcnow)


BroadcastEvent = Annotated[
    Union[
        InitialDataEvent,
        StatusUpdateEvent,
        MessageStatusUpdateEvent,
        QueueStatsEvent,
        SystemEvent,
        HeartbeatEvent,
    ],
    Field(discriminator="type"),
]
