"""
Domain: Blood groups.

A fixed set of eight ABO/Rh groups. Each group owns exactly one inventory ledger.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from .errors import ValidationError


class BloodGroup(str, Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"

    @staticmethod
    def parse(value: Any) -> "BloodGroup":
        """Resolve a BloodGroup from its label, raising ValidationError if unknown."""

        if isinstance(value, BloodGroup):
            return value
        try:
            return BloodGroup(str(value).strip().upper())
        except ValueError:
            allowed = ", ".join(g.value for g in BloodGroup)
            raise ValidationError(f"Unknown blood group '{value}'. Must be one of: {allowed}") from None
