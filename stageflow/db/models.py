from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Stage(Base):
    __tablename__ = "stages"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    approval_fields = Column(JSON, default=list)   # ApprovalFieldDefinition dumps
    recipients = Column(JSON, default=dict)        # {"staff": [...], "client": [...]}


class WorkItem(Base):
    __tablename__ = "work_items"

    id = Column(String, primary_key=True)
    description = Column(String, nullable=True)
    stage_id = Column(String, nullable=False)
    stage_entered_at = Column(DateTime(timezone=True), default=_utcnow)


class StageTransition(Base):
    __tablename__ = "stage_transitions"

    id = Column(String, primary_key=True)  # client-issued transition id
    work_item_id = Column(String, index=True, nullable=False)
    from_stage_id = Column(String, nullable=True)
    to_stage_id = Column(String, nullable=False)
    reason_id = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    attachments = Column(JSON, default=list)
    committed_at = Column(DateTime(timezone=True), default=_utcnow)


class Upload(Base):
    __tablename__ = "uploads"

    object_path = Column(String, primary_key=True)
    work_item_id = Column(String, index=True, nullable=False)
    file_name = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    received_bytes = Column(Integer, nullable=True)


class Query(Base):
    __tablename__ = "queries"

    id = Column(String, primary_key=True)  # client-generated query id
    work_item_id = Column(String, index=True, nullable=False)
    transition_id = Column(String, index=True, nullable=False)
    date = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    money_in = Column(String, nullable=True)
    money_out = Column(String, nullable=True)
    our_query = Column(Text, default="")
    status = Column(String, default="open")


class NotificationDispatch(Base):
    __tablename__ = "notification_dispatches"

    dedupe_key = Column(String, primary_key=True)
    transition_id = Column(String, index=True, nullable=False)
    channel = Column(String, nullable=False)
    recipient_ids = Column(JSON, default=list)
    sent_at = Column(DateTime(timezone=True), default=_utcnow)
