# Import SQLAlchemy models so they register on Base.metadata
from dispatch_api.models.assignment import (  # noqa: F401
    AssignmentPriority,
    AssignmentStatus,
    CancelledBy,
    DriverAssignment,
)
from dispatch_api.models.assignment_event import AssignmentEvent  # noqa: F401
from dispatch_api.models.chef import Chef  # noqa: F401
from dispatch_api.models.driver import Driver, DriverAccountStatus  # noqa: F401
from dispatch_api.models.order import Order, OrderStatus  # noqa: F401
from dispatch_api.models.subscription import Subscription, SubscriptionStatus  # noqa: F401
