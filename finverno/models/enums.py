from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    CONTRACTOR = "contractor"
    INVESTOR = "investor"


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    TENDERING = "tendering"
    AWARDED = "awarded"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FundingStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_FUNDED = "partially_funded"
    FUNDED = "funded"


class PurchaseRequestStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    FUNDED = "funded"
    PO_GENERATED = "po_generated"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class PurchaseRequestItemStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    ORDERED = "ordered"
    RECEIVED = "received"
    REJECTED = "rejected"


class DeliveryStatus(str, Enum):
    NOT_DISPATCHED = "not_dispatched"
    DISPATCHED = "dispatched"
    DISPUTED = "disputed"
    DELIVERED = "delivered"


class VerificationStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    VERIFIED = "verified"
    DISPUTED = "disputed"
    REVISION_REQUIRED = "revision_required"


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TransactionType(str, Enum):
    INFLOW = "inflow"
    OUTFLOW = "outflow"
    ALLOCATION = "allocation"
    RETURN = "return"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]
