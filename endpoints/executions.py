from fastapi import APIRouter, UploadFile, File, HTTPException
from sqlmodel import Session
from uuid import UUID
from database.database import engine
from database.models import ExecutionCreate, ExecutionItemUpdate, QueuedFile, SubmissionContext
from constants import ATTACHMENT_MIME_TYPES
from logic.exceptions import (
    AttachmentNotFoundError,
    ChecklistError,
    ChecklistMismatchError,
    ChecklistValidationError,
    IncompleteAttachmentsError,
    PersistenceError,
    ReadOnlySubmissionError,
    SubmissionNotFoundError,
    TemplateNotFoundError,
    UnknownChecklistItemError,
)
from logic.execution import ExecutionSession
from logic.persistence import submission_persistence
from logic.registry import execution_registry
from logic.templates import get_checklist_template

router = APIRouter(prefix="/executions", tags=["Executions"]) #an execution is a live checklist run held in memory until it is saved or completed

def http_error(error: ChecklistError) -> HTTPException: #translate checklist errors into HTTP status codes
    if isinstance(error, (TemplateNotFoundError, SubmissionNotFoundError, UnknownChecklistItemError, AttachmentNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ReadOnlySubmissionError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, ChecklistValidationError):
        return HTTPException(status_code=422, detail={"message": str(error), "missing_items": error.missing_items})
    if isinstance(error, ChecklistMismatchError):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, IncompleteAttachmentsError): #submission stays in progress, failed files stay queued for the next try
        return HTTPException(status_code=503, detail={
            "message": str(error),
            "attachment_failures": [failure.model_dump(mode="json") for failure in error.report.failures],
        })
    if isinstance(error, PersistenceError):
        return HTTPException(status_code=503, detail=str(error)) #edits are kept in memory so the client can retry
    return HTTPException(status_code=400, detail=str(error))

def get_execution(execution_id: UUID) -> ExecutionSession:
    execution = execution_registry.get(execution_id)
    if not execution:
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution

def execution_view(execution_id: UUID, execution: ExecutionSession) -> dict:
    progress = execution.progress()
    return {
        "execution_id": execution_id,
        "submission_id": execution.submission_id,
        "checklist": {
            "id": execution.template.id,
            "name": execution.template.name,
        },
        "context_id": execution.context.context_id,
        "status": execution.status,
        "read_only": execution.read_only,
        "is_dirty": execution.is_dirty(),
        "can_complete": execution.can_complete(),
        "missing_required_items": [item.title for item in execution.missing_required_items()],
        "progress": {
            "completed_count": progress.completed_count,
            "total_count": progress.total_count,
            "percent": progress.percent,
        },
        "items": [
            {
                "id": item.id,
                "title": item.title,
                "instructions": item.instructions,
                "priority": item.priority,
                "is_required": item.is_required,
                "sort_order": item.sort_order,
                "is_completed": bool(execution.completed_items.get(item.id, False)),
                "note": execution.item_notes.get(item.id) or "",
                "attachments": execution.staging.attachments_for(item.id),
            }
            for item in execution.items
        ],
    }

@router.post("/", status_code=201) #POST endpoint to open a checklist execution, resumes the open draft if there is one
def open_execution(execution_data: ExecutionCreate):
    with Session(engine) as session:
        try:
            template = get_checklist_template(execution_data.checklist_id, session)
        except TemplateNotFoundError as e:
            raise http_error(e)

    context = SubmissionContext(context_id=execution_data.context_id, submitted_by=execution_data.submitted_by) #identity comes from the caller, it is only stamped on records
    try:
        if execution_data.submission_id:
            execution = ExecutionSession.resume(template, context, submission_persistence, execution_data.submission_id)
        else:
            execution = ExecutionSession.start(template, context, submission_persistence)
    except ChecklistError as e:
        raise http_error(e)

    execution_id = execution_registry.add(execution)
    return execution_view(execution_id, execution)

@router.get("/{execution_id}", status_code=200)
def get_execution_state(execution_id: UUID):
    return execution_view(execution_id, get_execution(execution_id))

@router.patch("/{execution_id}/items/{item_id}", status_code=200) #PATCH endpoint to tick/untick an item and/or change its note
def update_execution_item(execution_id: UUID, item_id: UUID, item_data: ExecutionItemUpdate):
    execution = get_execution(execution_id)
    try:
        if item_data.is_completed is not None:
            execution.toggle_item(item_id, item_data.is_completed)
        if item_data.note is not None:
            execution.set_note(item_id, item_data.note)
    except ChecklistError as e:
        raise http_error(e)
    return execution_view(execution_id, execution)

@router.post("/{execution_id}/items/{item_id}/attachments", status_code=201) #POST endpoint to queue a file for an item, it is uploaded on the next save
async def queue_attachment(execution_id: UUID, item_id: UUID, file: UploadFile = File(...)):
    execution = get_execution(execution_id)
    if file.content_type not in ATTACHMENT_MIME_TYPES: #verify the file type and return error if uploaded file is an invalid type
        raise HTTPException(status_code=415, detail="Unsupported media type (PDF, JPG, PNG, HEIC and WEBP only)")
    file_contents = await file.read()

    try:
        temp_id = execution.attach(item_id, QueuedFile(file_name=file.filename or "attachment", content=file_contents, mime_type=file.content_type))
    except ChecklistError as e:
        raise http_error(e)

    return {
        "temp_id": temp_id,
        "file_name": file.filename,
        "size_bytes": len(file_contents),
        "execution": execution_view(execution_id, execution),
    }

@router.delete("/{execution_id}/items/{item_id}/attachments/queued/{temp_id}", status_code=200) #DELETE endpoint to drop a queued file before it is uploaded
def remove_queued_attachment(execution_id: UUID, item_id: UUID, temp_id: str):
    execution = get_execution(execution_id)
    try:
        removed = execution.remove_queued_attachment(item_id, temp_id)
    except ChecklistError as e:
        raise http_error(e)
    return {"removed": removed, "execution": execution_view(execution_id, execution)}

@router.delete("/{execution_id}/attachments/{attachment_id}", status_code=200) #DELETE endpoint to mark a stored attachment for deletion on the next save
def request_attachment_deletion(execution_id: UUID, attachment_id: UUID):
    execution = get_execution(execution_id)
    try:
        marked = execution.request_delete(attachment_id)
    except ChecklistError as e:
        raise http_error(e)
    return {"marked": marked, "execution": execution_view(execution_id, execution)}

@router.post("/{execution_id}/save", status_code=200) #POST endpoint to save progress as a draft
def save_execution(execution_id: UUID):
    execution = get_execution(execution_id)
    try:
        outcome = execution.save_draft()
    except ChecklistError as e:
        raise http_error(e)
    return {
        "submission_id": outcome.submission_id,
        "status": outcome.status,
        "attachment_failures": outcome.attachments.failures, #failed files stay queued for the next save
        "execution": execution_view(execution_id, execution),
    }

@router.post("/{execution_id}/complete", status_code=200) #POST endpoint to complete the checklist, submission becomes read only
def complete_execution(execution_id: UUID):
    execution = get_execution(execution_id)
    try:
        outcome = execution.complete()
    except ChecklistError as e:
        raise http_error(e)
    response = {
        "submission_id": outcome.submission_id,
        "status": outcome.status,
        "execution": execution_view(execution_id, execution),
    }
    execution_registry.discard(execution_id) #completed executions are read only, stored state is served by /submissions
    return response

@router.delete("/{execution_id}", status_code=204) #DELETE endpoint to discard an execution, anything not saved is lost
def discard_execution(execution_id: UUID):
    if not execution_registry.discard(execution_id):
        raise HTTPException(status_code=404, detail="Execution not found")
