"""SQLAlchemy ORM models for mdcollab."""

from mdcollab.models.base import Base
from mdcollab.models.edit import Edit, EditStatus
from mdcollab.models.file import File, FileStatus, FileVersion
from mdcollab.models.folder import Folder
from mdcollab.models.notification import Notification
from mdcollab.models.user import Role, User

__all__ = [
    "Base",
    "Edit",
    "EditStatus",
    "File",
    "FileStatus",
    "FileVersion",
    "Folder",
    "Notification",
    "Role",
    "User",
]
