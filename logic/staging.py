from itertools import count
from uuid import UUID, uuid4
from pydantic import BaseModel, Field
from database.models import QueuedFile, StoredAttachment, ReconcileReport
from logic.exceptions import AttachmentNotFoundError

class StagingSnapshot(BaseModel):
    queued: dict[UUID, list[QueuedFile]] = Field(default_factory=dict)
    to_delete: list[UUID] = Field(default_factory=list)

class AttachmentView(BaseModel): #what the caller shows for one item, stored files stay visible while marked for deletion
    id: UUID | None = None
    temp_id: str | None = None
    file_name: str
    url: str | None = None
    size_bytes: int | None = None
    mime_type: str | None = None
    queued: bool = False
    marked_for_deletion: bool = False

class AttachmentStaging:
    """Attachment changes of one execution session that have not been saved yet.

    Keeps three things per checklist item: attachments that are already stored,
    files queued for upload and ids of stored attachments marked for deletion.
    Nothing in here talks to storage, persistence commits and then hands the
    outcome back through commit().
    """

    def __init__(self, existing: dict[UUID, list[StoredAttachment]] | None = None):
        self._existing = {item_id: list(attachments) for item_id, attachments in (existing or {}).items()}
        self._queued: dict[UUID, list[QueuedFile]] = {}
        self._to_delete: list[UUID] = [] #list keeps the order ids were marked in
        self._token = uuid4().hex[:8] #temp ids from different sessions never collide
        self._counter = count(1)

    def queue(self, item_id: UUID, file: QueuedFile) -> str:
        temp_id = f"{self._token}-{next(self._counter)}"
        self._queued.setdefault(item_id, []).append(file.model_copy(update={"temp_id": temp_id}))
        return temp_id

    def unqueue(self, item_id: UUID, temp_id: str) -> bool:
        queued_files = self._queued.get(item_id, [])
        remaining = [queued for queued in queued_files if queued.temp_id != temp_id]
        if len(remaining) == len(queued_files): #already committed or never queued
            return False
        if remaining:
            self._queued[item_id] = remaining
        else:
            del self._queued[item_id]
        return True

    def mark_deleted(self, attachment_id: UUID) -> bool:
        if self.find_existing(attachment_id) is None:
            raise AttachmentNotFoundError(attachment_id)
        if attachment_id in self._to_delete:
            return False
        self._to_delete.append(attachment_id)
        return True

    def find_existing(self, attachment_id: UUID) -> StoredAttachment | None:
        for attachments in self._existing.values():
            for attachment in attachments:
                if attachment.id == attachment_id:
                    return attachment
        return None

    def snapshot(self) -> StagingSnapshot:
        return StagingSnapshot(
            queued={item_id: list(queued_files) for item_id, queued_files in self._queued.items()},
            to_delete=list(self._to_delete),
        )

    def is_empty(self) -> bool:
        return not self._queued and not self._to_delete

    @property
    def existing(self) -> dict[UUID, list[StoredAttachment]]:
        return {item_id: list(attachments) for item_id, attachments in self._existing.items() if attachments}

    def attachments_for(self, item_id: UUID) -> list[AttachmentView]:
        views = [
            AttachmentView(
                id=attachment.id,
                file_name=attachment.file_name,
                url=attachment.url,
                size_bytes=attachment.size_bytes,
                mime_type=attachment.mime_type,
                marked_for_deletion=attachment.id in self._to_delete,
            )
            for attachment in self._existing.get(item_id, [])
        ]
        views.extend(
            AttachmentView(
                temp_id=queued.temp_id,
                file_name=queued.file_name,
                size_bytes=queued.size_bytes,
                mime_type=queued.mime_type,
                queued=True,
            )
            for queued in self._queued.get(item_id, [])
        )
        return views

    def commit(self, report: ReconcileReport):
        for attachment_id in report.deleted: #deleted from storage and manifest, forget it everywhere
            if attachment_id in self._to_delete:
                self._to_delete.remove(attachment_id)
            for item_id, attachments in self._existing.items():
                self._existing[item_id] = [attachment for attachment in attachments if attachment.id != attachment_id]

        for uploaded in report.uploaded: #uploaded files now have a durable id so the temp id is dropped
            item_id = uploaded.attachment.item_id
            if uploaded.temp_id is not None:
                self.unqueue(item_id, uploaded.temp_id)
            self._existing.setdefault(item_id, []).append(uploaded.attachment)
        #failures are left staged so the next save retries only those
