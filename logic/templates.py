from uuid import UUID
from sqlmodel import Session, select
from database.models import Checklist, ChecklistItem, ChecklistTemplate, ChecklistTemplateItem
from logic.exceptions import TemplateNotFoundError

def get_checklist_template(checklist_id: UUID, session: Session) -> ChecklistTemplate: #read checklist and its items into an immutable template
    checklist = session.get(Checklist, checklist_id)
    if not checklist:
        raise TemplateNotFoundError(checklist_id)

    checklist_items = session.exec(
        select(ChecklistItem).where(ChecklistItem.checklist_id == checklist_id).order_by(ChecklistItem.sort_order)
    ).all()

    return ChecklistTemplate(
        id=checklist.id,
        name=checklist.name,
        items=tuple(
            ChecklistTemplateItem(
                id=checklist_item.id,
                title=checklist_item.title,
                instructions=checklist_item.instructions,
                priority=checklist_item.priority,
                is_required=checklist_item.is_required,
                sort_order=checklist_item.sort_order,
            )
            for checklist_item in checklist_items
        ),
    )
