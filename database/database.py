from sqlmodel import SQLModel, create_engine
from config import DATABASE_URL

if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False} #FastAPI runs sync endpoints in a thread pool so SQLite connections get shared between threads
else:
    connect_args = {}

engine = create_engine(DATABASE_URL, connect_args=connect_args) #SQLAlchemy Engine allows for database interaction

def create_database_tables():
    SQLModel.metadata.create_all(engine) #creates SQLModel defined tables (that dont already exist) and adds to database
