# Models package: import all models here so Alembic can discover them.

from app.models.user import User  # noqa: F401
from app.models.order import Order  # noqa: F401
from app.models.payment_transaction import PaymentTransaction  # noqa: F401
from app.models.subscription import Subscription, SubscriptionPlan  # noqa: F401
from app.models.message import Message  # noqa: F401
from app.models.audit import AuditEvent  # noqa: F401
