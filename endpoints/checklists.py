from fastapi import APIRouter, HTTPException
from sqlmodel import Session
from uuid import UUID
from database.database import engine
from logic.exceptions import TemplateNotFoundError
from logic.templates import get_checklist_template

router = APIRouter(prefix="/checklists", tags=["Checklists"]) #checklists are written elsewhere, this router only reads them

@router.get("/{checklist_id}", status_code=200) #GET endpoint for a checklist template and its items in sort order
def get_checklist(checklist_id: UUID):
    with Session(engine) as session: #opens engine (database) session
        try:
            template = get_checklist_template(checklist_id, session)
        except TemplateNotFoundError:
            raise HTTPException(status_code=404, detail="Checklist not found")
        return template
