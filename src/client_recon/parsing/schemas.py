from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, NamedTuple

from ..models.records import SourceVersion

"""Per-version field -> cell tables for client tabs.

These tables are the physical contract with the client workbook templates.
Extraction degrades to typed defaults instead of failing, so a template change
(inserted or removed rows / columns) shows up as empty fields, not as an error.
Re-check the addresses below whenever a template is revised.

Shared layout of all three versions:
    row 6  personal headers (Last Name, First, TDY Location, ...)
    row 7  personal data, columns M..U
    row 8  deal data, columns B..G
    A10..A12 labels "Orders Start" / "Orders End" / "Contract Value", values in B

V2 only: referral / sales rep on row 4, billing + delivery address and monthly
rent / utilities on row 13, tax info on row 15.
V3 / V4 (identical templates): referral on row 5, sales rep next to the
"SalesRep" label on row 6, tax info on row 17, number of nights on row 19,
financial summary on rows 20-24, comments on row 26.
"""

__all__ = [
    "FieldKind",
    "FieldSpec",
    "V2_SCHEMA",
    "V3_SCHEMA",
    "V4_SCHEMA",
    "SCHEMAS",
    "schema_for",
    "default_for",
]


class FieldKind(Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"


class FieldSpec(NamedTuple):
    address: str
    kind: FieldKind


_DEFAULTS: dict[FieldKind, Any] = {
    FieldKind.TEXT: "",
    FieldKind.NUMBER: 0.0,
    FieldKind.BOOLEAN: False,
    FieldKind.DATE: "",
}


def default_for(kind: FieldKind) -> Any:
    return _DEFAULTS[kind]


T, N, B, D = FieldKind.TEXT, FieldKind.NUMBER, FieldKind.BOOLEAN, FieldKind.DATE

_PERSONAL: dict[str, FieldSpec] = {
    "last_name": FieldSpec("M7", T),
    "first_name": FieldSpec("N7", T),
    "tdy_location": FieldSpec("O7", T),
    "contract_start_date": FieldSpec("P7", D),
    "contract_end_date": FieldSpec("Q7", D),
    "gov_agency_or_dept": FieldSpec("R7", T),
    "cell": FieldSpec("S7", T),
    "email": FieldSpec("T7", T),
    "gov_email": FieldSpec("U7", T),
}

_DEAL: dict[str, FieldSpec] = {
    "tdy_type": FieldSpec("B8", T),
    "deal_type": FieldSpec("C8", T),
    "client_worksheet_url": FieldSpec("D8", T),
    "contract_status": FieldSpec("E8", T),
    "has_roommates": FieldSpec("F8", B),
    "total_roommates": FieldSpec("G8", N),
    "per_diem_start_date": FieldSpec("B10", D),
    "per_diem_end_date": FieldSpec("B11", D),
    "max_lodging_allocation": FieldSpec("B12", N),
}

V2_SCHEMA: MappingProxyType[str, FieldSpec] = MappingProxyType({
    **_PERSONAL,
    **_DEAL,
    "referral_source": FieldSpec("B4", T),
    "referral_fee_type": FieldSpec("C4", T),
    "sales_rep": FieldSpec("D4", T),
    "number_of_nights": FieldSpec("B13", N),
    "billing_address": FieldSpec("M13", T),
    "billing_city": FieldSpec("N13", T),
    "billing_state": FieldSpec("O13", T),
    "billing_zip": FieldSpec("P13", T),
    "delivery_address": FieldSpec("Q13", T),
    "delivery_city": FieldSpec("R13", T),
    "delivery_state": FieldSpec("S13", T),
    "delivery_zip": FieldSpec("T13", T),
    "monthly_rent": FieldSpec("U13", N),
    "monthly_utilities": FieldSpec("V13", N),
    "lodging_tax_exempt": FieldSpec("D15", B),
    "lodging_tax_reimbursable": FieldSpec("E15", B),
    "tax_calculation_method": FieldSpec("F15", T),
    "liquidation_tax_rate": FieldSpec("G15", N),
})

V3_SCHEMA: MappingProxyType[str, FieldSpec] = MappingProxyType({
    **_PERSONAL,
    **_DEAL,
    "referral_source": FieldSpec("B5", T),
    "referral_fee_type": FieldSpec("C5", T),
    "sales_rep": FieldSpec("E6", T),
    "lodging_tax_exempt": FieldSpec("D17", B),
    "lodging_tax_reimbursable": FieldSpec("E17", B),
    "tax_calculation_method": FieldSpec("F17", T),
    "liquidation_tax_rate": FieldSpec("G17", N),
    "contract_tax_rate": FieldSpec("H17", N),
    "number_of_nights": FieldSpec("C19", N),
    # financial summary
    "total_contract_value": FieldSpec("C20", N),
    "total_billed": FieldSpec("C21", N),
    "total_paid": FieldSpec("C22", N),
    "balance_due": FieldSpec("C23", N),
    "deposit_amount": FieldSpec("C24", N),
    "monthly_rate": FieldSpec("F20", N),
    "daily_rate": FieldSpec("F21", N),
    "lodging_tax_amount": FieldSpec("F22", N),
    "referral_fee_amount": FieldSpec("F23", N),
    "deposit_received": FieldSpec("F24", B),
    "comments": FieldSpec("B26", T),
})

# V4 のテンプレートは V3 と同一
V4_SCHEMA = V3_SCHEMA

del T, N, B, D

SCHEMAS: MappingProxyType[SourceVersion, MappingProxyType[str, FieldSpec]] = MappingProxyType({
    SourceVersion.V2: V2_SCHEMA,
    SourceVersion.V3: V3_SCHEMA,
    SourceVersion.V4: V4_SCHEMA,
})


def schema_for(version: SourceVersion) -> MappingProxyType[str, FieldSpec]:
    """Field table for a tabbed source version."""
    try:
        return SCHEMAS[version]
    except KeyError:
        raise ValueError(f"no field schema for source version {version.value!r}") from None
