import time
from datetime import date, datetime, timezone


class SystemClock:
    """Wall clock used by the ledger, the token store and check-in. Everything is UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()

    def timestamp(self) -> float:
        return time.time()
