from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from boatcare.core.config import Settings, get_settings

CENT = Decimal("0.01")


@dataclass(frozen=True)
class InvoicePolicy:
    deposit_percent: Decimal = Decimal("30")
    grace_days: int = 30
    reference_prefix: str = "FAC"
    max_reference_attempts: int = 5

    def __post_init__(self) -> None:
        if not (Decimal("0") <= self.deposit_percent <= Decimal("100")):
            raise ValueError("deposit_percent must be within 0..100")
        if self.grace_days < 0:
            raise ValueError("grace_days must be >= 0")
        if self.max_reference_attempts < 1:
            raise ValueError("max_reference_attempts must be >= 1")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "InvoicePolicy":
        settings = settings or get_settings()
        return cls(
            deposit_percent=Decimal(str(settings.invoice_deposit_percent)),
            grace_days=settings.invoice_payment_grace_days,
            reference_prefix=settings.invoice_reference_prefix.strip().upper(),
            max_reference_attempts=settings.invoice_reference_max_attempts,
        )

    def deposit_for(self, total: Decimal) -> Decimal:
        if total < 0:
            raise ValueError("total must be >= 0")
        deposit = (total * self.deposit_percent / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
        # Invariant: 0 <= deposit <= total.
        return min(deposit, total.quantize(CENT, rounding=ROUND_HALF_UP))

    def payment_due_date(self, invoice_date: date) -> date:
        return invoice_date + timedelta(days=self.grace_days)

    def generate_reference(self, invoice_date: date) -> str:
        return f"{self.reference_prefix}-{invoice_date:%Y%m%d}-{secrets.token_hex(3).upper()}"
