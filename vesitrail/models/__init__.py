from vesitrail.models.user import User, UserRole, admin_required
from vesitrail.models.settings import Settings
from vesitrail.models.booklet import ConcessionBooklet, BookletStatus
from vesitrail.models.application import ConcessionApplication, ApplicationStatus, ApplicationType

__all__ = [
    "User",
    "UserRole",
    "admin_required",
    "Settings",
    "ConcessionBooklet",
    "BookletStatus",
    "ConcessionApplication",
    "ApplicationStatus",
    "ApplicationType",
]
