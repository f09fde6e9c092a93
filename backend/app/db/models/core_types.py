import enum


class Role(str, enum.Enum):
    admin = "admin"
    staff = "staff"
    system = "system"


class ItemStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"


class MovementDirection(str, enum.Enum):
    inbound = "IN"
    outbound = "OUT"


class ReferenceType(str, enum.Enum):
    purchase_order = "PURCHASE_ORDER"
    sales_order = "SALES_ORDER"
    adjustment = "ADJUSTMENT"
    manual = "MANUAL"
    opening = "OPENING"


class SalesOrderStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"


class RequirementStatus(str, enum.Enum):
    sufficient = "sufficient"
    shortage = "shortage"
    critical = "critical"
    fulfilled = "fulfilled"
    cancelled = "cancelled"


OPEN_REQUIREMENT_STATUSES = (
    RequirementStatus.sufficient,
    RequirementStatus.shortage,
    RequirementStatus.critical,
)


class Urgency(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"

    @property
    def rank(self) -> int:
        return _URGENCY_RANK[self]


_URGENCY_RANK = {
    Urgency.low: 0,
    Urgency.medium: 1,
    Urgency.high: 2,
    Urgency.critical: 3,
}


class RequisitionStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    converted = "converted"


ACTIVE_REQUISITION_STATUSES = (
    RequisitionStatus.pending,
    RequisitionStatus.approved,
)


class POStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    delivered = "delivered"
    cancelled = "cancelled"
