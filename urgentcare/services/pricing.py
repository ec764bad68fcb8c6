from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")


def _env_decimal(name: str, default: str) -> Decimal:
    try:
        return Decimal(os.getenv(name, default))
    except ArithmeticError:
        return Decimal(default)


# Flat fee for every case patient beyond the first
ADDITIONAL_PATIENT_FEE = _env_decimal("ADDITIONAL_PATIENT_FEE", "50")


@dataclass(frozen=True)
class PriceQuote:
    base_price: Decimal
    additional_fees: Decimal
    donation_amount: Decimal
    total_price: Decimal
    insurance_coverage: Decimal
    patient_responsibility: Decimal

    def as_columns(self) -> dict:
        return {
            "base_price": self.base_price,
            "additional_fees": self.additional_fees,
            "donation_amount": self.donation_amount,
            "total_price": self.total_price,
            "insurance_coverage": self.insurance_coverage,
            "patient_responsibility": self.patient_responsibility,
        }


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS, rounding=ROUND_HALF_UP)


def quote(base_price, patient_count: int, donation_amount=0, insurance_coverage=0) -> PriceQuote:
    """Price a request before it is persisted.

    total = base + fees + donation; the patient owes total minus coverage,
    never less than zero.
    """
    if patient_count < 1:
        raise ValueError("A care request needs at least one case patient")
    base = _money(base_price)
    fees = _money(ADDITIONAL_PATIENT_FEE * (patient_count - 1))
    donation = _money(donation_amount)
    if donation < 0:
        raise ValueError("Donation amount cannot be negative")
    total = base + fees + donation
    coverage = min(_money(insurance_coverage), total)
    return PriceQuote(
        base_price=base,
        additional_fees=fees,
        donation_amount=donation,
        total_price=total,
        insurance_coverage=coverage,
        patient_responsibility=total - coverage,
    )
