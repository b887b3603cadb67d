import os
from dotenv import load_dotenv

load_dotenv() #load .env file (if there is one) into environment variables

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///database.db") #SQLite database will be stored in database.db unless overridden
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploaded_files") #local folder used as the attachment bucket
PUBLIC_URL_BASE = os.getenv("PUBLIC_URL_BASE", "/files").rstrip("/") #prefix for public attachment urls
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
EXECUTION_IDLE_SECONDS = int(os.getenv("EXECUTION_IDLE_SECONDS", "3600")) #executions untouched for this long are dropped from memory

os.makedirs(UPLOAD_DIR, exist_ok=True) #make sure bucket folder exists before anything is written to it
