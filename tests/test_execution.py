import uuid
import pytest
from database.models import (
    PersistOutcome,
    QueuedFile,
    ReconcileFailure,
    ReconcileReport,
    ResumeState,
    StoredAttachment,
    SubmissionContext,
    UploadedAttachment,
)
from enums import SubmissionStatusEnum
from logic.exceptions import (
    ChecklistMismatchError,
    ChecklistValidationError,
    IncompleteAttachmentsError,
    PersistenceError,
    ReadOnlySubmissionError,
    UnknownChecklistItemError,
)
from logic.execution import ExecutionSession, Progress

class FakeStore: #stands in for persistence, commits every attachment change it is given
    def __init__(self):
        self.calls = []
        self.fail = False
        self.error = None #raised as is when set
        self.submission_id = None
        self.open_submission = None

    def persist(self, result, context, existing_submission_id):
        if self.error is not None:
            raise self.error
        if self.fail:
            raise PersistenceError("storage unavailable")
        self.calls.append((result, existing_submission_id))
        if self.submission_id is None:
            self.submission_id = uuid.uuid4()
        uploaded = [
            UploadedAttachment(
                temp_id=queued.temp_id,
                attachment=StoredAttachment(
                    id=uuid.uuid4(),
                    item_id=item_id,
                    file_name=queued.file_name,
                    file_path=f"{self.submission_id}/{item_id}/{queued.file_name}",
                    size_bytes=queued.size_bytes,
                ),
            )
            for item_id, queued_files in result.queued_attachments.items()
            for queued in queued_files
        ]
        return PersistOutcome(
            submission_id=self.submission_id,
            status=result.status,
            attachments=ReconcileReport(deleted=list(result.to_delete_attachments), uploaded=uploaded),
        )

    def load_for_resume(self, submission_id):
        return self.open_submission

    def find_open_submission(self, checklist_id, context_id):
        return self.open_submission.submission_id if self.open_submission else None

@pytest.fixture
def store():
    return FakeStore()

@pytest.fixture
def context():
    return SubmissionContext(context_id=uuid.uuid4(), submitted_by=uuid.uuid4())

@pytest.fixture
def template(make_template):
    return make_template(
        {"title": "Test smoke alarms", "is_required": True},
        {"title": "Check fire exits", "is_required": False},
        {"title": "Photograph extinguisher", "is_required": False},
    )

def test_progress_moves_with_toggles(template, context, store):
    execution = ExecutionSession(template, context, store)
    assert execution.progress() == Progress(0, 3, 0)

    percents = [execution.progress().percent]
    for item in template.items:
        execution.toggle_item(item.id, True)
        percents.append(execution.progress().percent)
    assert percents == sorted(percents)
    assert execution.progress() == Progress(3, 3, 100)

    for item in template.items:
        execution.toggle_item(item.id, False)
        percents.append(execution.progress().percent)
    assert percents[3:] == sorted(percents[3:], reverse=True)
    assert all(0 <= percent <= 100 for percent in percents)

def test_progress_rounds_half_up(make_template, context, store):
    template = make_template(*({"title": f"Task {number}"} for number in range(8)))
    execution = ExecutionSession(template, context, store)
    execution.toggle_item(template.items[0].id, True)
    assert execution.progress() == Progress(1, 8, 13) #12.5 rounds up

def test_zero_item_template(make_template, context, store):
    execution = ExecutionSession(make_template(), context, store)
    assert execution.progress() == Progress(0, 0, 0)
    assert execution.can_complete()

    outcome = execution.complete()
    assert outcome.status == SubmissionStatusEnum.completed
    assert execution.read_only

def test_complete_requires_required_items(make_template, context, store):
    template = make_template(
        {"title": "A", "is_required": True},
        {"title": "B", "is_required": True},
    )
    execution = ExecutionSession(template, context, store)
    execution.toggle_item(template.items[0].id, True)

    with pytest.raises(ChecklistValidationError) as error:
        execution.complete()
    assert error.value.missing_items == ["B"]
    assert "B" in str(error.value)
    assert execution.status == SubmissionStatusEnum.in_progress
    assert execution.submission_id is None
    assert store.calls == []

def test_happy_path(make_template, context, store):
    template = make_template(
        {"title": "Item 1", "is_required": True},
        {"title": "Item 2", "is_required": False},
    )
    first_item, second_item = template.items
    execution = ExecutionSession(template, context, store)

    execution.toggle_item(first_item.id, True)
    outcome = execution.save_draft()
    assert outcome.status == SubmissionStatusEnum.in_progress
    assert execution.progress().percent == 50
    assert execution.submission_id == outcome.submission_id

    execution.toggle_item(second_item.id, True)
    execution.complete()
    assert execution.status == SubmissionStatusEnum.completed
    assert execution.progress().percent == 100
    assert store.calls[1][1] == outcome.submission_id #second call updates the same submission
    assert store.calls[1][0].completed_at is not None

    with pytest.raises(ReadOnlySubmissionError):
        execution.toggle_item(first_item.id, False)

def test_attach_completes_item(template, context, store):
    photo_item = template.items[2]
    execution = ExecutionSession(template, context, store, completed_items={photo_item.id: False})

    temp_id = execution.attach(photo_item.id, QueuedFile(file_name="extinguisher.jpg", content=b"jpg", mime_type="image/jpeg"))
    assert execution.completed_items[photo_item.id] is True
    assert execution.is_dirty()

    execution.toggle_item(photo_item.id, False) #unticking does not take the attachment back
    queued = execution.staging.snapshot().queued[photo_item.id]
    assert [queued_file.temp_id for queued_file in queued] == [temp_id]

def test_mutations_rejected_after_complete(template, context, store):
    execution = ExecutionSession(template, context, store)
    execution.toggle_item(template.items[0].id, True)
    execution.set_note(template.items[0].id, "All alarms beep")
    execution.complete()

    before = (dict(execution.completed_items), dict(execution.item_notes), execution.staging.snapshot())
    with pytest.raises(ReadOnlySubmissionError):
        execution.toggle_item(template.items[1].id, True)
    with pytest.raises(ReadOnlySubmissionError):
        execution.set_note(template.items[0].id, "changed")
    with pytest.raises(ReadOnlySubmissionError):
        execution.attach(template.items[2].id, QueuedFile(file_name="late.jpg", content=b"x"))
    with pytest.raises(ReadOnlySubmissionError):
        execution.save_draft()
    with pytest.raises(ReadOnlySubmissionError):
        execution.complete()
    assert (dict(execution.completed_items), dict(execution.item_notes), execution.staging.snapshot()) == before
    assert len(store.calls) == 1

def test_failed_save_keeps_edits(template, context, store):
    item = template.items[0]
    execution = ExecutionSession(template, context, store)
    execution.toggle_item(item.id, True)
    execution.set_note(item.id, "Battery replaced")
    execution.attach(item.id, QueuedFile(file_name="alarm.jpg", content=b"jpg"))

    store.fail = True
    with pytest.raises(PersistenceError):
        execution.save_draft()
    assert execution.submission_id is None
    assert execution.is_dirty()
    assert execution.item_notes[item.id] == "Battery replaced"
    assert len(execution.staging.snapshot().queued[item.id]) == 1

    store.fail = False
    execution.save_draft() #same call again succeeds
    assert execution.submission_id is not None
    assert not execution.is_dirty()
    assert execution.staging.snapshot().queued == {}
    assert [attachment.file_name for attachment in execution.staging.existing[item.id]] == ["alarm.jpg"]

def test_failed_complete_does_not_lock(template, context, store):
    execution = ExecutionSession(template, context, store)
    execution.toggle_item(template.items[0].id, True)
    store.fail = True
    with pytest.raises(PersistenceError):
        execution.complete()
    assert not execution.read_only
    execution.toggle_item(template.items[1].id, True)

def test_is_dirty_tracks_baseline(template, context, store):
    item = template.items[0]
    execution = ExecutionSession(template, context, store)
    assert not execution.is_dirty()

    execution.toggle_item(item.id, True)
    assert execution.is_dirty()
    execution.toggle_item(item.id, False) #back to how it started
    assert not execution.is_dirty()

    execution.set_note(item.id, "Checked")
    assert execution.is_dirty()
    execution.save_draft()
    assert not execution.is_dirty()

def test_build_result_defaults(template, context, store):
    execution = ExecutionSession(template, context, store)
    execution.toggle_item(template.items[1].id, True)

    result = execution.build_result(SubmissionStatusEnum.in_progress)
    assert result.checklist_id == template.id
    assert [item.item_id for item in result.items] == [item.id for item in template.items]
    assert [item.is_completed for item in result.items] == [False, True, False]
    assert [item.note for item in result.items] == ["", "", ""]
    assert result.queued_attachments == {}
    assert result.to_delete_attachments == []

def test_items_follow_sort_order(make_template, context, store):
    template = make_template({"title": "First"}, {"title": "Second"})
    reversed_template = template.model_copy(update={"items": tuple(
        item.model_copy(update={"sort_order": 10 - item.sort_order}) for item in template.items
    )})
    execution = ExecutionSession(reversed_template, context, store)
    assert [item.title for item in execution.items] == ["Second", "First"]

def test_unknown_item_rejected(template, context, store):
    execution = ExecutionSession(template, context, store)
    with pytest.raises(UnknownChecklistItemError):
        execution.toggle_item(uuid.uuid4(), True)
    with pytest.raises(UnknownChecklistItemError):
        execution.attach(uuid.uuid4(), QueuedFile(file_name="a.pdf", content=b"a"))

def test_unknown_items_dropped_on_construction(template, context, store):
    stale_item_id = uuid.uuid4()
    execution = ExecutionSession(
        template,
        context,
        store,
        completed_items={template.items[0].id: True, stale_item_id: True},
        item_notes={stale_item_id: "old"},
    )
    assert execution.completed_items == {template.items[0].id: True}
    assert execution.item_notes == {}
    assert not execution.is_dirty()

def test_request_delete_is_saved(template, context, store):
    item = template.items[2]
    attachment = StoredAttachment(id=uuid.uuid4(), item_id=item.id, file_name="old.jpg", file_path="x/old.jpg")
    execution = ExecutionSession(template, context, store, submission_id=uuid.uuid4(), attachments={item.id: [attachment]})

    assert execution.request_delete(attachment.id) is True
    assert execution.request_delete(attachment.id) is False
    assert execution.is_dirty()

    execution.save_draft()
    assert store.calls[0][0].to_delete_attachments == [attachment.id]
    assert execution.staging.existing == {}
    assert not execution.is_dirty()

def test_start_resumes_open_draft(template, context, store):
    first_item = template.items[0]
    store.open_submission = ResumeState(
        submission_id=uuid.uuid4(),
        checklist_id=template.id,
        context_id=context.context_id,
        status=SubmissionStatusEnum.in_progress,
        completed_items={first_item.id: True},
        item_notes={first_item.id: "done"},
    )
    execution = ExecutionSession.start(template, context, store)
    assert execution.submission_id == store.open_submission.submission_id
    assert execution.completed_items == {first_item.id: True}
    assert execution.item_notes == {first_item.id: "done"}
    assert not execution.read_only

def test_start_without_open_draft(template, context, store):
    execution = ExecutionSession.start(template, context, store)
    assert execution.submission_id is None
    assert execution.completed_items == {}

def test_resume_rejects_other_checklist(template, make_template, context, store):
    store.open_submission = ResumeState(
        submission_id=uuid.uuid4(),
        checklist_id=uuid.uuid4(),
        context_id=context.context_id,
        status=SubmissionStatusEnum.in_progress,
    )
    with pytest.raises(ChecklistMismatchError):
        ExecutionSession.resume(template, context, store, store.open_submission.submission_id)

def test_failed_save_keeps_created_submission(template, context, store):
    execution = ExecutionSession(template, context, store)
    execution.toggle_item(template.items[0].id, True)

    created_submission_id = uuid.uuid4()
    store.error = PersistenceError("items lost", submission_id=created_submission_id)
    with pytest.raises(PersistenceError):
        execution.save_draft()
    assert execution.submission_id == created_submission_id
    assert execution.is_dirty()

    store.error = None
    execution.save_draft()
    assert store.calls[0][1] == created_submission_id #retry updates the row created by the failed call

def test_failed_complete_keeps_stored_attachments(template, context, store):
    photo_item = template.items[2]
    execution = ExecutionSession(template, context, store)
    execution.toggle_item(template.items[0].id, True)
    good_temp_id = execution.attach(photo_item.id, QueuedFile(file_name="good.jpg", content=b"good"))
    bad_temp_id = execution.attach(photo_item.id, QueuedFile(file_name="bad.jpg", content=b"bad"))

    submission_id = uuid.uuid4()
    stored = StoredAttachment(id=uuid.uuid4(), item_id=photo_item.id, file_name="good.jpg", file_path=f"{submission_id}/good.jpg")
    store.error = IncompleteAttachmentsError(submission_id, ReconcileReport(
        uploaded=[UploadedAttachment(temp_id=good_temp_id, attachment=stored)],
        failures=[ReconcileFailure(item_id=photo_item.id, temp_id=bad_temp_id, error="disk full")],
    ))
    with pytest.raises(IncompleteAttachmentsError):
        execution.complete()
    assert not execution.read_only
    assert execution.submission_id == submission_id
    assert execution.staging.existing[photo_item.id] == [stored]
    assert [queued.temp_id for queued in execution.staging.snapshot().queued[photo_item.id]] == [bad_temp_id]

    store.error = None
    execution.complete()
    retried = store.calls[0][0]
    assert [queued.temp_id for queued in retried.queued_attachments[photo_item.id]] == [bad_temp_id] #only the failed file is sent again
    assert execution.read_only
