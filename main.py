import logging
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from config import LOG_LEVEL, UPLOAD_DIR, PUBLIC_URL_BASE
from database.database import create_database_tables
from endpoints import checklists, executions, submissions

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

create_database_tables() #call function to create database tables

app = FastAPI( #creates new FastAPI app instance
    title="House Checklists: Checklist Execution", #title shown in docs
)

app.include_router(checklists.router) #include routers from endpoints
app.include_router(executions.router)
app.include_router(submissions.router)

if PUBLIC_URL_BASE.startswith("/"): #serve stored attachments when public urls point back at this app
    app.mount(PUBLIC_URL_BASE, StaticFiles(directory=UPLOAD_DIR), name="files")

@app.get("/")
def hello_checklists():
    return {"Hello": "House Checklists"}
