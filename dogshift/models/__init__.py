# Models package — import all models here so Alembic can discover them.

from dogshift.models.user import User  # noqa: F401
from dogshift.models.sitter import SitterProfile  # noqa: F401
from dogshift.models.booking import Booking, BookingStatus  # noqa: F401
from dogshift.models.notification import (  # noqa: F401
    Notification,
    NotificationKind,
    NotificationPreference,
    NotificationSendLog,
)
