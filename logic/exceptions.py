from uuid import UUID
from database.models import ReconcileReport

class ChecklistError(Exception): #base class for every error raised by checklist execution and persistence
    pass

class ChecklistValidationError(ChecklistError): #completing while required items are still open
    def __init__(self, missing_items: list[str]):
        self.missing_items = missing_items
        super().__init__(f"Please complete all required items: {', '.join(missing_items)}")

class ReadOnlySubmissionError(ChecklistError): #any mutation after the submission was completed
    def __init__(self, submission_id: UUID | None = None):
        self.submission_id = submission_id
        super().__init__("Submission is completed and can no longer be changed")

class UnknownChecklistItemError(ChecklistError):
    def __init__(self, item_id: UUID):
        self.item_id = item_id
        super().__init__(f"Checklist item {item_id} is not part of this checklist")

class AttachmentNotFoundError(ChecklistError):
    def __init__(self, attachment_id: UUID):
        self.attachment_id = attachment_id
        super().__init__(f"Attachment {attachment_id} not found")

class TemplateNotFoundError(ChecklistError):
    def __init__(self, checklist_id: UUID):
        self.checklist_id = checklist_id
        super().__init__("Checklist not found")

class SubmissionNotFoundError(ChecklistError):
    def __init__(self, submission_id: UUID):
        self.submission_id = submission_id
        super().__init__("Submission not found")

class ChecklistMismatchError(ChecklistError): #resuming a submission with a template of another checklist
    def __init__(self, submission_id: UUID, submission_checklist_id: UUID, checklist_id: UUID):
        self.submission_id = submission_id
        super().__init__(f"Submission {submission_id} belongs to checklist {submission_checklist_id}, not {checklist_id}")

class PersistenceError(ChecklistError): #storage or database failure, safe to retry the same call
    def __init__(self, message: str, submission_id: UUID | None = None, report: ReconcileReport | None = None):
        self.submission_id = submission_id #set once the submission row exists, a retry has to update that row
        self.report = report #set once items are stored and attachment changes were attempted
        super().__init__(message)

class IncompleteAttachmentsError(PersistenceError): #completing while some attachment changes could not be stored
    def __init__(self, submission_id: UUID, report: ReconcileReport):
        super().__init__(
            f"{len(report.failures)} attachment changes could not be stored, submission was not completed",
            submission_id=submission_id,
            report=report,
        )
