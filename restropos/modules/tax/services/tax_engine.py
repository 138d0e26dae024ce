# restropos/modules/tax/services/tax_engine.py

"""
GST helpers for bills.

Two responsibilities live here and they must not be mixed up:

* ``compute_gst_split`` estimates tax for previews before a bill exists.
* ``tax_display_lines`` renders a generated bill. It only chooses between
  the IGST field and the CGST/SGST fields; the amounts are whatever the
  server returned.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Protocol, Tuple

from ..schemas.tax_schemas import GstSplit, TaxLine

logger = logging.getLogger(__name__)

PAISE = Decimal("0.01")


class TaxedBill(Protocol):
    is_inter_state: bool
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    tax_amount: Optional[Decimal]


def quantize_money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(PAISE, rounding=ROUND_HALF_UP)


def normalize_state_code(code: Optional[str]) -> Optional[str]:
    """Return a two digit state code, or None when no code was given"""
    if code is None:
        return None
    code = str(code).strip()
    if not code:
        return None
    if not code.isdigit() or len(code) > 2:
        raise ValueError(f"Invalid GST state code: {code!r}")
    return code.zfill(2)


def state_code_from_gstin(gstin: str) -> str:
    """The first two characters of a GSTIN are the registrant's state code"""
    gstin = (gstin or "").strip().upper()
    if len(gstin) != 15 or not gstin[:2].isdigit():
        raise ValueError(f"Invalid GSTIN: {gstin!r}")
    return gstin[:2]


def is_inter_state(supplier_state: str, place_of_supply: Optional[str]) -> bool:
    """Supply is inter-state when the place of supply is a different state"""
    supplier = normalize_state_code(supplier_state)
    destination = normalize_state_code(place_of_supply)
    if destination is None:
        return False
    return supplier != destination


def halve_tax(tax: Decimal) -> Tuple[Decimal, Decimal]:
    """Split an intra-state tax total into CGST and SGST"""
    cgst = quantize_money(tax / 2)
    return cgst, quantize_money(tax) - cgst


def compute_gst_split(
    subtotal: Decimal,
    rate_percent: Decimal,
    supplier_state: str,
    place_of_supply: Optional[str] = None,
) -> GstSplit:
    """
    Estimate GST on a subtotal.

    Tax is computed once on the whole amount and rounded to paise.
    Intra-state tax is halved into CGST and SGST; CGST takes the
    rounded-up half and SGST the rest, so the two always add up to the
    rounded tax.
    """
    subtotal = quantize_money(subtotal)
    if subtotal < 0:
        raise ValueError("subtotal cannot be negative")
    rate = Decimal(rate_percent)
    if rate < 0:
        raise ValueError("rate_percent cannot be negative")

    supplier = normalize_state_code(supplier_state)
    if supplier is None:
        raise ValueError("supplier_state is required")
    destination = normalize_state_code(place_of_supply)

    tax = quantize_money(subtotal * rate / Decimal("100"))
    inter_state = is_inter_state(supplier, destination)

    if inter_state:
        return GstSplit(
            taxable_amount=subtotal,
            rate_percent=rate,
            igst=tax,
            is_inter_state=True,
            supplier_state=supplier,
            place_of_supply=destination,
        )

    cgst, sgst = halve_tax(tax)
    return GstSplit(
        taxable_amount=subtotal,
        rate_percent=rate,
        cgst=cgst,
        sgst=sgst,
        is_inter_state=False,
        supplier_state=supplier,
        place_of_supply=destination,
    )


def tax_display_lines(bill: TaxedBill) -> List[TaxLine]:
    """
    Pick the tax fields to render for a generated bill.

    Bills that carry only the total tax are shown as IGST for inter-state
    supply, or halved into CGST and SGST otherwise.
    """
    if not (bill.cgst or bill.sgst or bill.igst):
        total = getattr(bill, "tax_amount", None)
        if not total or total <= 0:
            return []
        if bill.is_inter_state:
            return [TaxLine(label="IGST", amount=quantize_money(total))]
        cgst, sgst = halve_tax(total)
        return [TaxLine(label="CGST", amount=cgst), TaxLine(label="SGST", amount=sgst)]

    if bill.is_inter_state:
        if bill.cgst or bill.sgst:
            logger.warning("Inter-state bill carries CGST/SGST amounts; showing IGST only")
        if bill.igst and bill.igst > 0:
            return [TaxLine(label="IGST", amount=bill.igst)]
        return []

    if bill.igst:
        logger.warning("Intra-state bill carries an IGST amount; showing CGST/SGST only")
    lines = []
    if bill.cgst and bill.cgst > 0:
        lines.append(TaxLine(label="CGST", amount=bill.cgst))
    if bill.sgst and bill.sgst > 0:
        lines.append(TaxLine(label="SGST", amount=bill.sgst))
    return lines


def bill_totals_display(bill) -> List[TaxLine]:
    """Subtotal, discount, tax and grand total lines in display order"""
    lines = [TaxLine(label="Subtotal", amount=bill.subtotal)]
    if bill.discount_amount and bill.discount_amount > 0:
        lines.append(TaxLine(label="Discount", amount=bill.discount_amount))
    lines.extend(tax_display_lines(bill))
    lines.append(TaxLine(label="Grand Total", amount=bill.grand_total))
    return lines
