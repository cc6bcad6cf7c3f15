# Models package: import all models here so Alembic can discover them.

from app.models.user import User  # noqa: F401
from app.models.lead import Lead  # noqa: F401
from app.models.customer import Customer  # noqa: F401
from app.models.job import Job, Task  # noqa: F401
from app.models.billing import Estimate, Invoice  # noqa: F401
from app.models.audit import ActivityLog, AuditTrail  # noqa: F401
from app.models.portal_token import ClientPortalToken  # noqa: F401
from app.models.preferences import DashboardPreferences  # noqa: F401
from app.models.stripe_event import StripeEvent  # noqa: F401
