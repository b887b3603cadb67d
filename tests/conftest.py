import os
import tempfile

TEST_DIR = tempfile.mkdtemp(prefix="house-checklists-") #point database and bucket at a temporary folder before the app is imported
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(TEST_DIR, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(TEST_DIR, "uploaded_files")
os.environ["PUBLIC_URL_BASE"] = "/files"

import uuid
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine
from database.models import Checklist, ChecklistItem, ChecklistTemplate, ChecklistTemplateItem, Staff
from logic.persistence import SubmissionPersistence
from logic.storage import LocalObjectStorage
from logic.templates import get_checklist_template

@pytest.fixture
def make_template():
    def _make_template(*items: dict, name: str = "Fire Safety") -> ChecklistTemplate:
        return ChecklistTemplate(
            id=uuid.uuid4(),
            name=name,
            items=tuple(
                ChecklistTemplateItem(id=uuid.uuid4(), sort_order=position, **item)
                for position, item in enumerate(items)
            ),
        )
    return _make_template

@pytest.fixture
def memory_engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool) #in-memory database shared by every session of one test
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()

@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(root=str(tmp_path / "bucket"), public_url_base="/files")

@pytest.fixture
def persistence(memory_engine, storage):
    return SubmissionPersistence(memory_engine, storage)

@pytest.fixture
def seed_checklist():
    def _seed_checklist(engine, *items: dict, name: str = "Fire Safety") -> ChecklistTemplate: #stores a checklist the way the template management side would
        with Session(engine) as session:
            checklist = Checklist(name=name)
            session.add(checklist)
            session.add_all(
                ChecklistItem(checklist_id=checklist.id, sort_order=position, **item)
                for position, item in enumerate(items)
            )
            session.commit()
            return get_checklist_template(checklist.id, session)
    return _seed_checklist

@pytest.fixture
def seed_staff():
    def _seed_staff(engine, name: str = "Jordan Lee") -> uuid.UUID:
        with Session(engine) as session:
            staff = Staff(name=name)
            session.add(staff)
            session.commit()
            return staff.id
    return _seed_staff
