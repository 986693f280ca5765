# screen_monitor/models/stored_file.py
"""
Uploaded files (defect photos, check frames).
The blob lives under MEDIA_ROOT/filename_disk; `folder` groups files the
same way the asset browser does (checks frames vs incident photos).
"""

import uuid
from sqlalchemy import Column, String, DateTime
from screen_monitor.database import Base


def _new_file_id():
    return str(uuid.uuid4())


class StoredFile(Base):
    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=_new_file_id)
    filename_disk = Column(String(255), nullable=False)
    title = Column(String(255))
    mime_type = Column(String(100))
    folder = Column(String(100), index=True)
    created_at = Column(DateTime)

    def __repr__(self):
        return f"<StoredFile {self.id} folder={self.folder}>"
