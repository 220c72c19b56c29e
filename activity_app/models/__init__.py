# Models package. Import all models here so Alembic can discover them.

from activity_app.models.company import Company  # noqa: F401
from activity_app.models.user import User  # noqa: F401
from activity_app.models.activity import Activity  # noqa: F401
from activity_app.models.dead_letter import ActivityDeadLetter  # noqa: F401
