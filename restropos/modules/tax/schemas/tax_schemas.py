from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class GstSplit(BaseModel):
    """GST split of one taxable amount between CGST/SGST or IGST"""

    taxable_amount: Decimal
    rate_percent: Decimal
    cgst: Decimal = Decimal("0.00")
    sgst: Decimal = Decimal("0.00")
    igst: Decimal = Decimal("0.00")
    is_inter_state: bool = False
    supplier_state: str
    place_of_supply: Optional[str] = None

    @property
    def total_tax(self) -> Decimal:
        return self.cgst + self.sgst + self.igst

    @property
    def grand_total(self) -> Decimal:
        return self.taxable_amount + self.total_tax


class TaxLine(BaseModel):
    """One labelled amount on a rendered bill"""

    label: str
    amount: Decimal = Field(..., ge=0)
