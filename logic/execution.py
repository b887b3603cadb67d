import logging
from datetime import datetime
from typing import NamedTuple, Protocol
from uuid import UUID
from database.models import (
    ChecklistTemplate,
    ChecklistTemplateItem,
    PersistOutcome,
    QueuedFile,
    ResumeState,
    StoredAttachment,
    SubmissionContext,
    SubmissionItemResult,
    SubmissionResult,
)
from enums import SubmissionStatusEnum
from logic.exceptions import ChecklistMismatchError, ChecklistValidationError, PersistenceError, ReadOnlySubmissionError, UnknownChecklistItemError
from logic.staging import AttachmentStaging

logger = logging.getLogger(__name__)

class Progress(NamedTuple):
    completed_count: int
    total_count: int
    percent: int

class SubmissionStore(Protocol): #what an execution session needs from persistence
    def persist(self, result: SubmissionResult, context: SubmissionContext, existing_submission_id: UUID | None) -> PersistOutcome: ...
    def load_for_resume(self, submission_id: UUID) -> ResumeState: ...
    def find_open_submission(self, checklist_id: UUID, context_id: UUID) -> UUID | None: ...

class ExecutionSession:
    """In-memory working model of one checklist run.

    Completion flags, notes and the attachment staging area all live here so
    progress, dirty tracking and validation read from one place. Saving and
    completing hand a SubmissionResult to the store. A failed store call keeps
    every edit so the same call can be retried, it only takes over the
    submission id and attachment changes the store reports as already stored.
    """

    def __init__(
        self,
        template: ChecklistTemplate,
        context: SubmissionContext,
        store: SubmissionStore,
        submission_id: UUID | None = None,
        status: SubmissionStatusEnum = SubmissionStatusEnum.in_progress,
        completed_items: dict[UUID, bool] | None = None,
        item_notes: dict[UUID, str] | None = None,
        attachments: dict[UUID, list[StoredAttachment]] | None = None,
    ):
        self.template = template
        self.context = context
        self.store = store
        self.submission_id = submission_id
        self.status = status
        self.items = sorted(template.items, key=lambda item: item.sort_order)
        self._items_by_id = {item.id: item for item in self.items}

        self.completed_items = self._known_items(completed_items or {}, "completion flag")
        self.item_notes = self._known_items(item_notes or {}, "note")
        self.staging = AttachmentStaging(self._known_items(attachments or {}, "attachment list"))
        self._reset_baseline()

    @classmethod
    def resume(cls, template: ChecklistTemplate, context: SubmissionContext, store: SubmissionStore, submission_id: UUID) -> "ExecutionSession":
        state = store.load_for_resume(submission_id)
        if state.checklist_id != template.id:
            raise ChecklistMismatchError(submission_id, state.checklist_id, template.id)
        return cls(
            template,
            context,
            store,
            submission_id=state.submission_id,
            status=state.status,
            completed_items=state.completed_items,
            item_notes=state.item_notes,
            attachments=state.attachments,
        )

    @classmethod
    def start(cls, template: ChecklistTemplate, context: SubmissionContext, store: SubmissionStore) -> "ExecutionSession":
        open_submission_id = store.find_open_submission(template.id, context.context_id) #resume an open draft rather than starting a second one
        if open_submission_id is not None:
            logger.info("Resuming open submission %s for checklist %s", open_submission_id, template.id)
            return cls.resume(template, context, store, open_submission_id)
        return cls(template, context, store)

    def _known_items(self, values: dict, kind: str) -> dict:
        known = {}
        for item_id, value in values.items():
            if item_id in self._items_by_id:
                known[item_id] = value
            else:
                logger.warning("Dropping %s for item %s, it is no longer on checklist %s", kind, item_id, self.template.id)
        return known

    def _reset_baseline(self):
        self._baseline = self._normalized_state()

    def _normalized_state(self) -> tuple[dict[UUID, bool], dict[UUID, str]]:
        return (
            {item.id: bool(self.completed_items.get(item.id, False)) for item in self.items},
            {item.id: self.item_notes.get(item.id) or "" for item in self.items},
        )

    def _require_item(self, item_id: UUID) -> ChecklistTemplateItem:
        item = self._items_by_id.get(item_id)
        if item is None:
            raise UnknownChecklistItemError(item_id)
        return item

    def _require_writable(self):
        if self.read_only:
            raise ReadOnlySubmissionError(self.submission_id)

    @property
    def read_only(self) -> bool:
        return self.status == SubmissionStatusEnum.completed

    #mutations

    def toggle_item(self, item_id: UUID, completed: bool):
        self._require_writable()
        self._require_item(item_id)
        self.completed_items[item_id] = completed

    def set_note(self, item_id: UUID, text: str):
        self._require_writable()
        self._require_item(item_id)
        self.item_notes[item_id] = text

    def attach(self, item_id: UUID, file: QueuedFile) -> str:
        self._require_writable()
        self._require_item(item_id)
        temp_id = self.staging.queue(item_id, file)
        self.toggle_item(item_id, True) #attaching evidence means the task was done
        return temp_id

    def remove_queued_attachment(self, item_id: UUID, temp_id: str) -> bool:
        self._require_writable()
        self._require_item(item_id)
        return self.staging.unqueue(item_id, temp_id) #completion flag is left alone

    def request_delete(self, attachment_id: UUID) -> bool:
        self._require_writable()
        return self.staging.mark_deleted(attachment_id)

    #derived values

    def progress(self) -> Progress:
        total_count = len(self.items)
        completed_count = sum(1 for item in self.items if self.completed_items.get(item.id))
        if total_count == 0:
            return Progress(0, 0, 0)
        percent = (200 * completed_count + total_count) // (2 * total_count) #round half up without floats
        return Progress(completed_count, total_count, percent)

    def is_dirty(self) -> bool:
        return self._normalized_state() != self._baseline or not self.staging.is_empty()

    def missing_required_items(self) -> list[ChecklistTemplateItem]:
        return [item for item in self.items if item.is_required and not self.completed_items.get(item.id)]

    def can_complete(self) -> bool:
        return not self.missing_required_items()

    def build_result(self, status: SubmissionStatusEnum, completed_at: datetime | None = None) -> SubmissionResult:
        snapshot = self.staging.snapshot()
        return SubmissionResult(
            checklist_id=self.template.id,
            status=status,
            completed_at=completed_at,
            items=[
                SubmissionItemResult(
                    item_id=item.id,
                    is_completed=bool(self.completed_items.get(item.id, False)),
                    note=self.item_notes.get(item.id) or "",
                )
                for item in self.items
            ],
            queued_attachments=snapshot.queued,
            to_delete_attachments=snapshot.to_delete,
        )

    #intents

    def save_draft(self) -> PersistOutcome:
        self._require_writable()
        result = self.build_result(SubmissionStatusEnum.in_progress)
        outcome = self._persist(result)
        self._apply(outcome)
        return outcome

    def complete(self) -> PersistOutcome:
        self._require_writable()
        missing_items = self.missing_required_items()
        if missing_items:
            raise ChecklistValidationError([item.title for item in missing_items])

        result = self.build_result(SubmissionStatusEnum.completed, completed_at=datetime.now())
        outcome = self._persist(result)
        self._apply(outcome)
        self.status = SubmissionStatusEnum.completed
        return outcome

    def _persist(self, result: SubmissionResult) -> PersistOutcome:
        try:
            return self.store.persist(result, self.context, self.submission_id)
        except PersistenceError as e:
            if e.submission_id is not None: #the row exists now, retrying must update it instead of creating another
                self.submission_id = e.submission_id
            if e.report is not None: #items are stored, keep what the attachment pass already committed
                self._apply(PersistOutcome(submission_id=e.submission_id, status=SubmissionStatusEnum.in_progress, attachments=e.report))
            raise

    def _apply(self, outcome: PersistOutcome):
        self.submission_id = outcome.submission_id #later saves update this submission instead of creating another
        self.staging.commit(outcome.attachments)
        self._reset_baseline()
        if not outcome.attachments.ok:
            logger.warning(
                "Submission %s saved with %d attachment changes left staged",
                outcome.submission_id,
                len(outcome.attachments.failures),
            )
