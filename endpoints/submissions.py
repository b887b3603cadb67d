from fastapi import APIRouter, HTTPException
from uuid import UUID
from logic.exceptions import PersistenceError, SubmissionNotFoundError
from logic.persistence import submission_persistence

router = APIRouter(prefix="/submissions", tags=["Submissions"])

@router.get("/", status_code=200) #GET endpoint for checklist history of a context (house)
def list_submissions(context_id: UUID):
    try:
        submissions = submission_persistence.list_submission_history(context_id)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"context_id": context_id, "submissions": submissions}

@router.get("/{submission_id}", status_code=200) #GET endpoint for stored state of one submission (flags, notes and attachments with urls)
def get_submission(submission_id: UUID):
    try:
        state = submission_persistence.load_for_resume(submission_id)
    except SubmissionNotFoundError:
        raise HTTPException(status_code=404, detail="Submission not found")
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return state
