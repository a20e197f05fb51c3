"""Data subject rights: access, erasure, portability, rectification, withdrawal."""

from .schemas import (
    ConsentWithdrawalResult,
    DataExport,
    DeletionOutcome,
    PortableData,
    PortableFormat,
    RectificationResult,
    SubjectRequestResponse,
)
from .service import SubjectRightsService, pseudonymize_details, render_portable

__all__ = [
    "ConsentWithdrawalResult",
    "DataExport",
    "DeletionOutcome",
    "PortableData",
    "PortableFormat",
    "RectificationResult",
    "SubjectRequestResponse",
    "SubjectRightsService",
    "pseudonymize_details",
    "render_portable",
]
