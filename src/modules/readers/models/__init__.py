from .reader import Reader, ReaderType, PortalAccessStatus
from .assignment import Assignment, AssignmentStatus, PaymentStatus
from .activity_log import ActivityLogEntry

__all__ = [
    'Reader', 'ReaderType', 'PortalAccessStatus',
    'Assignment', 'AssignmentStatus', 'PaymentStatus',
    'ActivityLogEntry',
]
