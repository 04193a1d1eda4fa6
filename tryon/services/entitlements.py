"""Entitlement checks consumed by the try-on orchestrator."""

from datetime import date
from typing import Callable, Protocol, runtime_checkable


@runtime_checkable
class Entitlements(Protocol):
    def is_entitled(self) -> bool: ...
    def remaining_free_uses_today(self) -> int: ...
    def record_use(self) -> None: ...


class DailyQuotaEntitlements:
    """Pro users are unlimited; everyone else gets a small daily allowance.

    The counter resets on the first use of a new calendar day.
    """

    def __init__(
        self,
        is_pro: bool = False,
        daily_limit: int = 2,
        today: Callable[[], date] = date.today,
    ):
        self.is_pro = is_pro
        self.daily_limit = daily_limit
        self._today = today
        self._usage_date = today()
        self._usage_count = 0

    def is_entitled(self) -> bool:
        return self.is_pro

    def remaining_free_uses_today(self) -> int:
        self._roll_over()
        return max(0, self.daily_limit - self._usage_count)

    def record_use(self) -> None:
        self._roll_over()
        self._usage_count += 1

    def _roll_over(self):
        current = self._today()
        if current != self._usage_date:
            self._usage_date = current
            self._usage_count = 0
