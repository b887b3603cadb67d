import os
import re
from unidecode import unidecode
from config import UPLOAD_DIR, PUBLIC_URL_BASE

class LocalObjectStorage: #key addressed blob store kept in a folder on disk, keys look like submission_id/item_id/file
    def __init__(self, root: str = UPLOAD_DIR, public_url_base: str = PUBLIC_URL_BASE):
        self.root = root
        self.public_url_base = public_url_base.rstrip("/")

    def _full_path(self, path: str) -> str:
        full_path = os.path.normpath(os.path.join(self.root, path))
        if os.path.commonpath([os.path.abspath(self.root), os.path.abspath(full_path)]) != os.path.abspath(self.root): #keys must stay inside the bucket folder
            raise ValueError(f"Invalid storage path: {path}")
        return full_path

    def put(self, path: str, data: bytes) -> str:
        full_path = self._full_path(path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as f:
            f.write(data) #write binary (wb) contents to stored path (bucket/key)
        return path

    def delete(self, path: str):
        full_path = self._full_path(path)
        if os.path.exists(full_path): #deleting something that is already gone is not an error
            os.remove(full_path)

    def public_url(self, path: str) -> str:
        return f"{self.public_url_base}/{path}"

def safe_file_name(file_name: str) -> str:
    ascii_file_name = unidecode(os.path.basename(file_name or "")) #strip folders and non-ASCII characters so the name is safe as a storage key
    cleaned_file_name = re.sub(r"[^A-Za-z0-9_.-]", "_", ascii_file_name).strip("._")
    return cleaned_file_name or "attachment.bin"
