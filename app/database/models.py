"""
Imports every model so Base.metadata knows all tables.

Used by create_all in development, Alembic autogenerate and the tests.
"""
from app.database.database import Base  # noqa: F401

import app.modules.auth.models  # noqa: F401
import app.modules.company.models  # noqa: F401
import app.modules.settings.models  # noqa: F401
import app.modules.pdf.models  # noqa: F401
import app.modules.clients.models  # noqa: F401
import app.modules.projects.models  # noqa: F401
import app.modules.time_tracking.models  # noqa: F401
import app.modules.expenses.models  # noqa: F401
import app.modules.invoices.models  # noqa: F401
import app.modules.quotations.models  # noqa: F401
import app.modules.payments.models  # noqa: F401
import app.modules.recurring.models  # noqa: F401
import app.modules.client_portal.models  # noqa: F401
import app.modules.notifications.models  # noqa: F401
import app.modules.email.models  # noqa: F401
