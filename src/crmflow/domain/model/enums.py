"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class SourceKind(StrEnum):
    EMAIL = "email"
    MEETING = "meeting"


class SourceEventStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class Folder(StrEnum):
    """Direction hint for emails: received vs. sent by the mailbox owner."""

    INBOX = "inbox"
    SENT = "sent"


class EntityType(StrEnum):
    """Canonical entity kinds an activity can propose changes for."""

    CONTACT = "contact"
    TASK = "task"
    DEAL = "deal"


class ActivityAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"


class ActivityStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TaskStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class DealStage(StrEnum):
    NEW = "new"
    IN_DISCUSSION = "in_discussion"
    PROPOSAL = "proposal"
    WON = "won"
    LOST = "lost"
