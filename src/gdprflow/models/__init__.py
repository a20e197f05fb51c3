"""SQLAlchemy models for the compliance engine"""

from .base import Base, PortableJSONB, utcnow
from .tenant import Tenant
from .user import User, Employee
from .user_session import UserSession
from .audit_log import AuditLog, AuditSeverity, AuditCategory
from .processing_activity import ProcessingActivity, LegalBasis
from .dpia_assessment import DPIAAssessmentRecord
from .consent_record import ConsentRecord, ConsentKeyHead, ConsentPurpose
from .retention_policy import DataRetentionPolicy, RetentionExecutionLease, GLOBAL_SCOPE
from .form import Form, FormSubmission
from .notification import Notification
from .data_breach import DataBreach, BreachSeverity, BreachStatus
from .data_subject_request import DataSubjectRequest, RequestType, RequestStatus

__all__ = [
    "Base",
    "PortableJSONB",
    "utcnow",
    "Tenant",
    "User",
    "Employee",
    "UserSession",
    "AuditLog",
    "AuditSeverity",
    "AuditCategory",
    "ProcessingActivity",
    "LegalBasis",
    "DPIAAssessmentRecord",
    "ConsentRecord",
    "ConsentKeyHead",
    "ConsentPurpose",
    "DataRetentionPolicy",
    "RetentionExecutionLease",
    "GLOBAL_SCOPE",
    "Form",
    "FormSubmission",
    "Notification",
    "DataBreach",
    "BreachSeverity",
    "BreachStatus",
    "DataSubjectRequest",
    "RequestType",
    "RequestStatus",
]
