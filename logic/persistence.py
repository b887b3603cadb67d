import logging
import time
from datetime import datetime
from hashlib import sha256
from uuid import UUID, uuid4
from sqlalchemy import case, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select
from constants import DELETED_CHECKLIST_NAME, UNKNOWN_STAFF_NAME
from database.database import engine
from database.models import (
    Attachment,
    Checklist,
    PersistOutcome,
    QueuedFile,
    ReconcileFailure,
    ReconcileReport,
    ResumeState,
    Staff,
    StoredAttachment,
    Submission,
    SubmissionContext,
    SubmissionItem,
    SubmissionItemResult,
    SubmissionResult,
    SubmissionSummary,
    UploadedAttachment,
)
from enums import SubmissionStatusEnum
from logic.exceptions import IncompleteAttachmentsError, PersistenceError, ReadOnlySubmissionError, SubmissionNotFoundError
from logic.storage import LocalObjectStorage, safe_file_name

logger = logging.getLogger(__name__)

UPSERT_DIALECTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert} #dialects with INSERT .. ON CONFLICT

class SubmissionPersistence:
    """Writes execution results to the database and attachment storage, and reads them back."""

    def __init__(self, engine: Engine, storage: LocalObjectStorage):
        self.engine = engine
        self.storage = storage

    def persist(self, result: SubmissionResult, context: SubmissionContext, existing_submission_id: UUID | None = None) -> PersistOutcome:
        completing = result.status == SubmissionStatusEnum.completed
        submission_id = self.upsert_submission( #submission id has to exist before items and attachments can reference it
            context,
            result.checklist_id,
            existing_submission_id,
            SubmissionStatusEnum.in_progress,
        )
        try:
            self.upsert_items(submission_id, result.items)
        except PersistenceError as e:
            raise PersistenceError(str(e), submission_id=submission_id) from e

        report = self.reconcile_attachments(
            submission_id,
            result.queued_attachments,
            result.to_delete_attachments,
            uploaded_by=context.submitted_by,
        )
        if completing: #only flip to completed once everything before it is stored
            if not report.ok:
                logger.warning("Submission %s left in progress, %d attachment changes failed", submission_id, len(report.failures))
                raise IncompleteAttachmentsError(submission_id, report)
            try:
                self.upsert_submission(context, result.checklist_id, submission_id, SubmissionStatusEnum.completed, result.completed_at)
            except PersistenceError as e:
                raise PersistenceError(str(e), submission_id=submission_id, report=report) from e
            logger.info("Submission %s completed", submission_id)
        return PersistOutcome(submission_id=submission_id, status=result.status, attachments=report)

    def upsert_submission(
        self,
        context: SubmissionContext,
        checklist_id: UUID,
        existing_submission_id: UUID | None,
        status: SubmissionStatusEnum,
        completed_at: datetime | None = None,
    ) -> UUID:
        if status == SubmissionStatusEnum.completed:
            completed_at = completed_at or datetime.now()
        else:
            completed_at = None

        try:
            with Session(self.engine) as session:
                if existing_submission_id is None:
                    submission = Submission(
                        checklist_id=checklist_id,
                        context_id=context.context_id,
                        status=status,
                        submitted_by=context.submitted_by,
                        completed_at=completed_at,
                    )
                    session.add(submission)
                    session.commit()
                    logger.info("Created submission %s for checklist %s in context %s", submission.id, checklist_id, context.context_id)
                    return submission.id

                submission = session.get(Submission, existing_submission_id)
                if not submission:
                    raise SubmissionNotFoundError(existing_submission_id)
                if submission.status == SubmissionStatusEnum.completed: #completed is terminal
                    raise ReadOnlySubmissionError(existing_submission_id)
                submission.status = status
                submission.submitted_by = context.submitted_by
                submission.completed_at = completed_at
                submission.updated_at = datetime.now()
                session.add(submission)
                session.commit()
                return submission.id
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save submission: {e}") from e

    def upsert_items(self, submission_id: UUID, items: list[SubmissionItemResult]):
        if not items:
            return
        now = datetime.now()
        rows = [
            {
                "submission_id": submission_id,
                "item_id": item.item_id,
                "is_completed": item.is_completed,
                "note": item.note or "",
                "completed_at": now if item.is_completed else None,
            }
            for item in items
        ]
        try:
            with Session(self.engine) as session:
                insert = UPSERT_DIALECTS.get(session.get_bind().dialect.name)
                if insert is None:
                    self._upsert_items_by_select(session, submission_id, rows)
                else:
                    table = SubmissionItem.__table__
                    statement = insert(table).values([{"id": uuid4(), **row} for row in rows])
                    statement = statement.on_conflict_do_update(
                        index_elements=[table.c.submission_id, table.c.item_id],
                        set_={
                            "is_completed": statement.excluded.is_completed,
                            "note": statement.excluded.note,
                            "completed_at": case( #keep the first completion time while the item stays completed
                                (statement.excluded.is_completed, func.coalesce(table.c.completed_at, statement.excluded.completed_at)),
                                else_=None,
                            ),
                        },
                    )
                    session.connection().execute(statement)
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save checklist items: {e}") from e

    def _upsert_items_by_select(self, session: Session, submission_id: UUID, rows: list[dict]):
        existing_rows = {
            row.item_id: row
            for row in session.exec(select(SubmissionItem).where(SubmissionItem.submission_id == submission_id)).all()
        }
        for row in rows:
            submission_item = existing_rows.get(row["item_id"])
            if submission_item is None:
                session.add(SubmissionItem(**row))
                continue
            submission_item.is_completed = row["is_completed"]
            submission_item.note = row["note"]
            if not row["is_completed"]:
                submission_item.completed_at = None
            elif submission_item.completed_at is None:
                submission_item.completed_at = row["completed_at"]
            session.add(submission_item)

    def reconcile_attachments(
        self,
        submission_id: UUID,
        queued: dict[UUID, list[QueuedFile]],
        to_delete: list[UUID],
        uploaded_by: UUID | None = None,
    ) -> ReconcileReport:
        report = ReconcileReport()

        for attachment_id in to_delete:
            try:
                self._delete_attachment(submission_id, attachment_id)
                report.deleted.append(attachment_id)
            except Exception as e: #each deletion stands on its own, the rest still run
                logger.warning("Could not delete attachment %s of submission %s", attachment_id, submission_id, exc_info=True)
                report.failures.append(ReconcileFailure(attachment_id=attachment_id, error=str(e)))

        for item_id, queued_files in queued.items():
            for queued_file in queued_files:
                try:
                    attachment = self._upload_attachment(submission_id, item_id, queued_file, uploaded_by)
                    report.uploaded.append(UploadedAttachment(temp_id=queued_file.temp_id, attachment=attachment))
                except Exception as e:
                    logger.warning("Could not upload %s for item %s of submission %s", queued_file.file_name, item_id, submission_id, exc_info=True)
                    report.failures.append(ReconcileFailure(item_id=item_id, temp_id=queued_file.temp_id, error=str(e)))

        if report.deleted or report.uploaded:
            logger.info("Submission %s attachments: %d uploaded, %d deleted", submission_id, len(report.uploaded), len(report.deleted))
        return report

    def _delete_attachment(self, submission_id: UUID, attachment_id: UUID):
        with Session(self.engine) as session:
            attachment = session.get(Attachment, attachment_id)
            if not attachment: #already gone, nothing left to clean up
                return
            if attachment.submission_id != submission_id:
                raise ValueError(f"Attachment {attachment_id} does not belong to submission {submission_id}")
            self.storage.delete(attachment.file_path) #remove the file first so a failed row delete never points at a missing file
            session.delete(attachment)
            session.commit()

    def _upload_attachment(self, submission_id: UUID, item_id: UUID, queued_file: QueuedFile, uploaded_by: UUID | None) -> StoredAttachment:
        file_path = f"{submission_id}/{item_id}/{int(time.time() * 1000)}-{uuid4().hex[:8]}-{safe_file_name(queued_file.file_name)}" #timestamp and random part keep two files with the same name apart
        self.storage.put(file_path, queued_file.content)
        with Session(self.engine) as session:
            attachment = Attachment(
                submission_id=submission_id,
                item_id=item_id,
                file_name=queued_file.file_name,
                file_path=file_path,
                size_bytes=queued_file.size_bytes,
                mime_type=queued_file.mime_type,
                sha256=sha256(queued_file.content).hexdigest(),
                uploaded_by=uploaded_by,
            )
            session.add(attachment)
            session.commit()
            session.refresh(attachment)
            return self._stored_attachment(attachment)

    def _stored_attachment(self, attachment: Attachment) -> StoredAttachment:
        return StoredAttachment(
            id=attachment.id,
            item_id=attachment.item_id,
            file_name=attachment.file_name,
            file_path=attachment.file_path,
            url=self.storage.public_url(attachment.file_path),
            size_bytes=attachment.size_bytes,
            mime_type=attachment.mime_type,
        )

    def load_for_resume(self, submission_id: UUID) -> ResumeState:
        try:
            with Session(self.engine) as session:
                submission = session.get(Submission, submission_id)
                if not submission:
                    raise SubmissionNotFoundError(submission_id)

                submission_items = session.exec(
                    select(SubmissionItem).where(SubmissionItem.submission_id == submission_id)
                ).all()
                attachments = session.exec(
                    select(Attachment).where(Attachment.submission_id == submission_id).order_by(Attachment.uploaded_at)
                ).all()

                state = ResumeState(
                    submission_id=submission.id,
                    checklist_id=submission.checklist_id,
                    context_id=submission.context_id,
                    status=submission.status,
                    completed_items={row.item_id: row.is_completed for row in submission_items},
                    item_notes={row.item_id: row.note or "" for row in submission_items},
                )
                for attachment in attachments:
                    state.attachments.setdefault(attachment.item_id, []).append(self._stored_attachment(attachment))
                return state
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load submission: {e}") from e

    def find_open_submission(self, checklist_id: UUID, context_id: UUID) -> UUID | None:
        try:
            with Session(self.engine) as session:
                submission = session.exec(
                    select(Submission)
                    .where(
                        Submission.checklist_id == checklist_id,
                        Submission.context_id == context_id,
                        Submission.status == SubmissionStatusEnum.in_progress,
                    )
                    .order_by(Submission.updated_at.desc())
                ).first()
                return submission.id if submission else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not look up open submission: {e}") from e

    def list_submission_history(self, context_id: UUID) -> list[SubmissionSummary]:
        try:
            with Session(self.engine) as session:
                rows = session.exec(
                    select(Submission, Checklist.name, Staff.name)
                    .join(Checklist, Checklist.id == Submission.checklist_id, isouter=True)
                    .join(Staff, Staff.id == Submission.submitted_by, isouter=True)
                    .where(Submission.context_id == context_id)
                    .order_by(Submission.updated_at.desc())
                ).all()

                item_counts = {}
                if rows:
                    counts = session.exec(
                        select(
                            SubmissionItem.submission_id,
                            func.count(SubmissionItem.id),
                            func.sum(case((SubmissionItem.is_completed, 1), else_=0)),
                        )
                        .where(SubmissionItem.submission_id.in_([submission.id for submission, _, _ in rows]))
                        .group_by(SubmissionItem.submission_id)
                    ).all()
                    item_counts = {submission_id: (item_count, completed or 0) for submission_id, item_count, completed in counts}

                summaries = []
                for submission, checklist_name, staff_name in rows:
                    item_count, completed_item_count = item_counts.get(submission.id, (0, 0))
                    summaries.append(SubmissionSummary(
                        id=submission.id,
                        checklist_id=submission.checklist_id,
                        checklist_name=checklist_name or DELETED_CHECKLIST_NAME,
                        staff_name=staff_name or UNKNOWN_STAFF_NAME,
                        status=submission.status,
                        completed_item_count=completed_item_count,
                        item_count=item_count,
                        started_at=submission.started_at,
                        completed_at=submission.completed_at,
                        updated_at=submission.updated_at,
                    ))
                return summaries
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not list submissions: {e}") from e

submission_persistence = SubmissionPersistence(engine, LocalObjectStorage()) #shared instance used by the endpoints
