from pydantic import BaseModel, Field as PydanticField
from datetime import datetime
from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from enums import SubmissionStatusEnum, ChecklistItemPriorityEnum #import enums from enums.py to have access to fixed choices in models
import uuid

#tables

class Checklist(SQLModel, table=True): #checklist template, written by the template management side and only read here
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    context_id: uuid.UUID | None = Field(default=None, index=True) #house the checklist belongs to (None for global checklists)
    created_at: datetime = Field(default_factory=datetime.now)

class ChecklistItem(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    checklist_id: uuid.UUID = Field(foreign_key="checklist.id", index=True)
    title: str
    instructions: str | None = None
    priority: ChecklistItemPriorityEnum = Field(default=ChecklistItemPriorityEnum.medium)
    is_required: bool = False
    sort_order: int = 0

class Staff(SQLModel, table=True): #only used to show who submitted a checklist in history
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str

class Submission(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    checklist_id: uuid.UUID = Field(foreign_key="checklist.id", index=True)
    context_id: uuid.UUID = Field(index=True)
    status: SubmissionStatusEnum = Field(default=SubmissionStatusEnum.in_progress)
    submitted_by: uuid.UUID | None = Field(default=None, foreign_key="staff.id")
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None #stays None until the submission is completed
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

class SubmissionItem(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("submission_id", "item_id"),) #one row per template item per submission, upserts conflict on this pair

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    submission_id: uuid.UUID = Field(foreign_key="submission.id", index=True)
    item_id: uuid.UUID = Field(foreign_key="checklistitem.id")
    is_completed: bool = False
    note: str = ""
    completed_at: datetime | None = None

class Attachment(SQLModel, table=True): #manifest row for a stored attachment file
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    submission_id: uuid.UUID = Field(foreign_key="submission.id", index=True)
    item_id: uuid.UUID = Field(foreign_key="checklistitem.id")
    file_name: str
    file_path: str #storage key, not a url
    size_bytes: int | None = None
    mime_type: str | None = None
    sha256: str | None = Field(default=None, max_length=64) #SHA-256 hash always returns 64 characters in hexadecimal
    uploaded_by: uuid.UUID | None = None
    uploaded_at: datetime = Field(default_factory=datetime.now)

#template read models

class ChecklistTemplateItem(BaseModel):
    id: uuid.UUID
    title: str
    instructions: str | None = None
    priority: ChecklistItemPriorityEnum = ChecklistItemPriorityEnum.medium
    is_required: bool = False
    sort_order: int = 0

class ChecklistTemplate(BaseModel):
    model_config = {"frozen": True} #template is treated as immutable for the lifetime of a session

    id: uuid.UUID
    name: str
    items: tuple[ChecklistTemplateItem, ...] = () #always sorted by sort_order

#execution models

class SubmissionContext(BaseModel): #where and by whom a checklist is being run, supplied by the caller
    context_id: uuid.UUID
    submitted_by: uuid.UUID | None = None

class QueuedFile(BaseModel): #file held in memory until the next save uploads it
    file_name: str
    content: bytes
    mime_type: str | None = None
    temp_id: str | None = None #assigned by the staging area when queued

    @property
    def size_bytes(self) -> int:
        return len(self.content)

class StoredAttachment(BaseModel):
    id: uuid.UUID
    item_id: uuid.UUID
    file_name: str
    file_path: str
    url: str | None = None
    size_bytes: int | None = None
    mime_type: str | None = None

class SubmissionItemResult(BaseModel):
    item_id: uuid.UUID
    is_completed: bool = False
    note: str = "" #notes default to an empty string, never None, so upsert payloads are deterministic

class SubmissionResult(BaseModel): #everything persistence needs for one save or complete
    checklist_id: uuid.UUID
    status: SubmissionStatusEnum
    completed_at: datetime | None = None
    items: list[SubmissionItemResult] = PydanticField(default_factory=list)
    queued_attachments: dict[uuid.UUID, list[QueuedFile]] = PydanticField(default_factory=dict)
    to_delete_attachments: list[uuid.UUID] = PydanticField(default_factory=list)

class UploadedAttachment(BaseModel):
    temp_id: str | None
    attachment: StoredAttachment

class ReconcileFailure(BaseModel):
    item_id: uuid.UUID | None = None
    temp_id: str | None = None #set for failed uploads
    attachment_id: uuid.UUID | None = None #set for failed deletions
    error: str

class ReconcileReport(BaseModel): #per entry outcome of attachment reconciliation, entries succeed or fail independently
    deleted: list[uuid.UUID] = PydanticField(default_factory=list)
    uploaded: list[UploadedAttachment] = PydanticField(default_factory=list)
    failures: list[ReconcileFailure] = PydanticField(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

class PersistOutcome(BaseModel):
    submission_id: uuid.UUID
    status: SubmissionStatusEnum
    attachments: ReconcileReport = PydanticField(default_factory=ReconcileReport)

class ResumeState(BaseModel): #stored submission reshaped into what an execution session is built from
    submission_id: uuid.UUID
    checklist_id: uuid.UUID
    context_id: uuid.UUID
    status: SubmissionStatusEnum
    completed_items: dict[uuid.UUID, bool] = PydanticField(default_factory=dict)
    item_notes: dict[uuid.UUID, str] = PydanticField(default_factory=dict)
    attachments: dict[uuid.UUID, list[StoredAttachment]] = PydanticField(default_factory=dict)

class SubmissionSummary(BaseModel): #history row, projection over Submission and SubmissionItem
    id: uuid.UUID
    checklist_id: uuid.UUID
    checklist_name: str
    staff_name: str
    status: SubmissionStatusEnum
    completed_item_count: int
    item_count: int
    started_at: datetime
    completed_at: datetime | None
    updated_at: datetime

#request models

class ExecutionCreate(BaseModel): #ExecutionCreate BaseModel is used to validate input when opening a checklist execution
    checklist_id: uuid.UUID
    context_id: uuid.UUID
    submitted_by: uuid.UUID | None = None
    submission_id: uuid.UUID | None = None #resume this submission instead of looking up the open draft

class ExecutionItemUpdate(BaseModel):
    is_completed: bool | None = None
    note: str | None = None
