"""Pydantic models describing the extraction API payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class ExtractionBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# --- request -----------------------------------------------------------------


class CommunicationPayload(ExtractionBaseModel):
    kind: str
    subject: str
    body: str
    sender_email: str = Field(alias="senderEmail")
    sender_name: str | None = Field(default=None, alias="senderName")
    recipient: str | None = None
    received_at: datetime = Field(alias="receivedAt")
    folder: str


class ContactSnapshot(ExtractionBaseModel):
    id: str
    name: str
    email: str
    company_name: str | None = Field(default=None, alias="companyName")
    title: str | None = None
    phone: str | None = None
    linkedin: str | None = None
    x: str | None = None
    city: str | None = None


class TaskSnapshot(ExtractionBaseModel):
    id: str
    title: str
    status: str
    priority: str
    contact_emails: list[str] = Field(default_factory=list[str], alias="contactEmails")
    due_date: datetime | None = Field(default=None, alias="dueDate")


class ExtractionRequestPayload(ExtractionBaseModel):
    communication: CommunicationPayload
    existing_contacts: list[ContactSnapshot] = Field(
        default_factory=list[ContactSnapshot], alias="existingContacts"
    )
    existing_tasks: list[TaskSnapshot] = Field(
        default_factory=list[TaskSnapshot], alias="existingTasks"
    )


# --- response ----------------------------------------------------------------


class NewContactPayload(ExtractionBaseModel):
    name: str = ""
    email: str | None = None
    company_name: str | None = Field(default=None, alias="companyName")
    title: str | None = None
    phone: str | None = None
    linkedin: str | None = None
    x: str | None = None
    city: str | None = None

    _normalize_optional = field_validator(
        "email", "company_name", "title", "phone", "linkedin", "x", "city", mode="before"
    )(_blank_to_none)


class ChangePayload(ExtractionBaseModel):
    field: str
    old_value: str | None = Field(default=None, alias="oldValue")
    new_value: str | None = Field(default=None, alias="newValue")

    @field_validator("old_value", "new_value", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class ContactUpdateEntryPayload(ExtractionBaseModel):
    existing_contact_id: str | None = Field(default=None, alias="existingContactId")
    name: str | None = None
    email: str | None = None
    changes: list[ChangePayload] = Field(default_factory=list[ChangePayload])


class NewTaskPayload(ExtractionBaseModel):
    title: str | None = None
    description: str | None = None
    company_name: str | None = Field(default=None, alias="companyName")
    contact_emails: list[str] = Field(default_factory=list[str], alias="contactEmails")
    status: str | None = None
    priority: str | None = None
    due_date: str | None = Field(default=None, alias="dueDate")

    _normalize_optional = field_validator("due_date", "company_name", mode="before")(
        _blank_to_none
    )


class NewDealPayload(ExtractionBaseModel):
    title: str | None = None
    company_name: str | None = Field(default=None, alias="companyName")
    contact_email: str | None = Field(default=None, alias="contactEmail")
    stage: str | None = None
    amount: int | None = None
    next_action: str | None = Field(default=None, alias="nextAction")
    next_action_date: str | None = Field(default=None, alias="nextActionDate")

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: object) -> object:
        if isinstance(value, str):
            digits = value.replace(",", "").replace("$", "").strip()
            return int(float(digits)) if digits else None
        if isinstance(value, float):
            return int(value)
        return value

    _normalize_optional = field_validator(
        "contact_email", "next_action_date", "company_name", mode="before"
    )(_blank_to_none)


class ExtractionResponse(ExtractionBaseModel):
    new_contacts: list[NewContactPayload] = Field(
        default_factory=list[NewContactPayload], alias="newContacts"
    )
    contact_updates: list[ContactUpdateEntryPayload] = Field(
        default_factory=list[ContactUpdateEntryPayload], alias="contactUpdates"
    )
    new_tasks: list[NewTaskPayload] = Field(default_factory=list[NewTaskPayload], alias="newTasks")
    new_deals: list[NewDealPayload] = Field(default_factory=list[NewDealPayload], alias="newDeals")


class ErrorResponse(ExtractionBaseModel):
    error: str
    message: str | None = None
