"""
Handle and query messages for Notebox.

Messages use the externally tagged snake_case shape, one key per variant:

    {"init_address": {"entropy": "..."}}
    {"create_viewing_key": {"entropy": "...", "padding": "..."}}
    {"send_message": {"to": "alice", "path": "notes/report.pdf"}}
    {"delete_all_messages": {}}

    {"get_messages": {"behalf": "alice", "key": "api_key_...", "page": 0, "page_size": 10}}
    {"get_message": {"behalf": "alice", "key": "api_key_...", "position": 0}}

handle() and query() dispatch a parsed message to the service. Every
handle message is one service invocation.

Invariants:
    - Exactly one variant is set per message
    - Query messages carry their own key; no sender is needed to read
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..codec import Record
from ..service import NotificationService
from ..state import ExecutionContext

logger = logging.getLogger(__name__)


class _Variant(BaseModel):
    model_config = ConfigDict(extra="forbid")


class InitAddress(_Variant):
    entropy: str


class CreateViewingKey(_Variant):
    entropy: str
    # Lets clients pad requests to a fixed size; ignored
    padding: str | None = None


class SendMessage(_Variant):
    to: str = Field(..., description="Recipient identity")
    path: str = Field(..., description="File path or content reference")


class DeleteAllMessages(_Variant):
    pass


class GetMessages(_Variant):
    behalf: str
    key: str
    page: int | None = Field(None, ge=0)
    page_size: int | None = Field(None, ge=1)


class GetMessage(_Variant):
    behalf: str
    key: str
    position: int = Field(..., ge=0)


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _exactly_one(self) -> _Envelope:
        present = [name for name in type(self).model_fields if getattr(self, name) is not None]
        if len(present) != 1:
            raise ValueError(f"exactly one message variant is required, got {len(present)}")
        return self

    @property
    def variant(self) -> _Variant:
        for name in type(self).model_fields:
            value = getattr(self, name)
            if value is not None:
                return value
        raise ValueError("empty message")


class HandleMsg(_Envelope):
    init_address: InitAddress | None = None
    create_viewing_key: CreateViewingKey | None = None
    send_message: SendMessage | None = None
    delete_all_messages: DeleteAllMessages | None = None


class QueryMsg(_Envelope):
    get_messages: GetMessages | None = None
    get_message: GetMessage | None = None


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class RecordModel(BaseModel):
    """A record as returned to its recipient."""

    reference: str
    sender: str
    ts: int | None = None

    @classmethod
    def from_record(cls, record: Record) -> RecordModel:
        return cls(reference=record.reference, sender=record.sender, ts=record.ts)


class DefaultAnswer(BaseModel):
    status: ResponseStatus


class ViewingKeyAnswer(BaseModel):
    key: str


class HandleAnswer(BaseModel):
    """Externally tagged handle response; exactly one field is set."""

    default_answer: DefaultAnswer | None = None
    create_viewing_key: ViewingKeyAnswer | None = None


class MessageResponse(BaseModel):
    messages: list[RecordModel]
    length: int


class QueryAnswer(BaseModel):
    """Externally tagged query response; exactly one field is set."""

    messages: MessageResponse | None = None
    message: RecordModel | None = None


async def handle(
    service: NotificationService,
    context: ExecutionContext,
    msg: HandleMsg,
) -> HandleAnswer:
    """Run one handle message against the service."""
    variant = msg.variant
    if isinstance(variant, InitAddress):
        key = await service.initialize(context, variant.entropy)
        return HandleAnswer(create_viewing_key=ViewingKeyAnswer(key=str(key)))
    if isinstance(variant, CreateViewingKey):
        key = await service.rotate_credential(context, variant.entropy)
        return HandleAnswer(create_viewing_key=ViewingKeyAnswer(key=str(key)))
    if isinstance(variant, SendMessage):
        await service.deposit(context, variant.to, variant.path)
        return HandleAnswer(default_answer=DefaultAnswer(status=ResponseStatus.SUCCESS))
    if isinstance(variant, DeleteAllMessages):
        await service.purge(context)
        return HandleAnswer(default_answer=DefaultAnswer(status=ResponseStatus.SUCCESS))
    raise ValueError(f"Unhandled message variant: {type(variant).__name__}")


async def query(service: NotificationService, msg: QueryMsg) -> QueryAnswer:
    """Run one query message against the service."""
    variant = msg.variant
    if isinstance(variant, GetMessages):
        page = await service.list_records(
            variant.behalf,
            variant.key,
            page=variant.page,
            page_size=variant.page_size,
        )
        return QueryAnswer(
            messages=MessageResponse(
                messages=[RecordModel.from_record(r) for r in page.records],
                length=page.total,
            )
        )
    if isinstance(variant, GetMessage):
        record = await service.get_record(variant.behalf, variant.key, variant.position)
        return QueryAnswer(message=RecordModel.from_record(record))
    raise ValueError(f"Unhandled query variant: {type(variant).__name__}")
