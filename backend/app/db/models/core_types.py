import enum


class POStatus(str, enum.Enum):
    draft = "DRAFT"
    pending = "PENDING"
    approved = "APPROVED"
    executed = "EXECUTED"
    cancelled = "CANCELLED"
    rejected = "REJECTED"


class POPriority(str, enum.Enum):
    low = "LOW"
    normal = "NORMAL"
    high = "HIGH"
    urgent = "URGENT"


class MaterialType(str, enum.Enum):
    production = "PRODUCTION"
    packaging = "PACKAGING"


class MovementDirection(str, enum.Enum):
    inbound = "IN"
    outbound = "OUT"


class StatsPeriod(str, enum.Enum):
    month = "month"
    quarter = "quarter"
    year = "year"
    all = "all"


class DuplicateItemPolicy(str, enum.Enum):
    all = "all"
    active_materials = "active_materials"


# Statuts depuis lesquels chaque transition est permise
EDITABLE_STATUSES = frozenset({POStatus.draft, POStatus.pending})
SUBMITTABLE_STATUSES = frozenset({POStatus.draft})
APPROVABLE_STATUSES = frozenset({POStatus.draft, POStatus.pending})
REJECTABLE_STATUSES = frozenset({POStatus.pending, POStatus.approved})
EXECUTABLE_STATUSES = frozenset({POStatus.approved})
CANCELLABLE_STATUSES = frozenset({POStatus.draft, POStatus.pending, POStatus.approved})
RESTORABLE_STATUSES = frozenset({POStatus.cancelled})
DELETABLE_STATUSES = frozenset({POStatus.draft, POStatus.cancelled})

# PO encore "vivants" (comptent pour les retards de livraison)
OPEN_STATUSES = frozenset({POStatus.draft, POStatus.pending, POStatus.approved})
