from app.models.base import Base  # noqa: F401

from app.models.seller import SellerAccount  # noqa: F401
from app.models.package import Package  # noqa: F401
from app.models.subscription import Subscription  # noqa: F401
from app.models.listing import Listing  # noqa: F401
from app.models.approval_decision import ApprovalDecision  # noqa: F401
from app.models.outbox import OutboxEvent  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.idempotency import IdempotencyKey  # noqa: F401
