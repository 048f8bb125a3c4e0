from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.types import DateTime, TypeDecorator

from ddd_outbox_core.utils import ensure_utc


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timezone-aware UTC timestamp on every dialect.
    Values are normalised to UTC on the way in; SQLite hands back naive
    values, which are tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> Any:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires timezone-aware datetimes")
        return ensure_utc(value)

    def process_result_value(self, value: Any, dialect: Any) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value)
