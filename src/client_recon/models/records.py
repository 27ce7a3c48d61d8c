from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

"""Record models shared by the parsers, the merge engine and the collaborators.

Lifecycle:
    SourceRecord / LedgerRecord   created once per tab / ledger block, never mutated
    CanonicalClientRecord         created and replaced only by services.merge

The canonical record keeps at most one payload per source slot (v2/v3/v4/ledger)
next to the reconciled top-level scalars.
"""

__all__ = [
    "SourceVersion",
    "SourceRecord",
    "MonthlyBillingEntry",
    "BILLING_SUBFIELDS",
    "LedgerRecord",
    "CanonicalClientRecord",
    "STRING_FIELDS",
    "NUMBER_FIELDS",
    "BOOLEAN_FIELDS",
    "MEANINGFUL_FIELDS",
]


class SourceVersion(Enum):
    """The four source slots. Declaration order is the merge order."""
    V2 = "v2"
    V3 = "v3"
    V4 = "v4"
    LEDGER = "ledger"

    @property
    def is_tabbed(self) -> bool:
        # ledger は 1 シート固定、それ以外はクライアント毎のタブ
        return self is not SourceVersion.LEDGER


@dataclass(frozen=True)
class SourceRecord:
    """Scalar values extracted from one client tab under one version schema.

    `values` carries every field of the version schema (typed defaults where the
    cell was missing), so V2Data / V3Data / V4Data are this type tagged by version.
    """
    version: SourceVersion
    tab: str  # 元シート名 (= client number)
    values: dict[str, Any]

    @property
    def client_number(self) -> str:
        return self.tab.strip()

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        return {"tab": self.tab, "client_number": self.client_number, **self.values}


BILLING_SUBFIELDS: tuple[str, ...] = (
    "payment_status",
    "due_date",
    "bill",
    "tax",
    "total_bill",
    "paid",
    "signed",
    "invoiced",
)


@dataclass(frozen=True)
class MonthlyBillingEntry:
    """One month of a ledger block. Absent sub-fields stay None."""
    payment_status: str | None = None
    due_date: str | None = None
    bill: float | None = None
    tax: float | None = None
    total_bill: float | None = None
    paid: float | None = None
    signed: str | None = None
    invoiced: str | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in BILLING_SUBFIELDS)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LedgerRecord:
    """Client-level data recovered from one 8-row block of the ledger sheet."""
    label: str  # block identifier (client number as text), "" if none found
    row: int  # zero-based first row of the block
    first_name: str = ""
    last_name: str = ""
    billing_address: str = ""
    billing_city: str = ""
    billing_state: str = ""
    billing_zip: str = ""
    sales_notes: str = ""
    operations_notes: str = ""
    accounting_notes: str = ""
    contract_tax_rate: float = 0.0
    liquidation_tax_rate: float = 0.0
    payment_type: str = ""
    last_four_digits: str = ""
    billing_details: dict[str, MonthlyBillingEntry] = field(default_factory=dict)
    # heuristics that disagreed inside the block (e.g. "identifier", "name")
    conflicts: tuple[str, ...] = ()

    @property
    def notes(self) -> str:
        return self.sales_notes or self.operations_notes or self.accounting_notes

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["billing_details"] = {m: e.to_dict() for m, e in self.billing_details.items()}
        data["conflicts"] = list(self.conflicts)
        return data


# 正規化済みトップレベル項目 (merge ポリシー別)
STRING_FIELDS: tuple[str, ...] = (
    "client_number",
    "first_name",
    "last_name",
    "email",
    "gov_email",
    "cell",
    "tdy_location",
    "gov_agency_or_dept",
    "tdy_type",
    "deal_type",
    "contract_status",
    "per_diem_start_date",
    "per_diem_end_date",
    "contract_start_date",
    "contract_end_date",
    "referral_source",
    "referral_fee_type",
    "sales_rep",
    "tax_calculation_method",
    "client_worksheet_url",
    "payment_type",
    "comments",
)

NUMBER_FIELDS: tuple[str, ...] = (
    "total_roommates",
    "max_lodging_allocation",
    "liquidation_tax_rate",
    "contract_tax_rate",
    "number_of_nights",
)

BOOLEAN_FIELDS: tuple[str, ...] = (
    "has_roommates",
    "lodging_tax_exempt",
    "lodging_tax_reimbursable",
)

# meaningful-data filter: いずれか非空なら残す
MEANINGFUL_FIELDS: tuple[str, ...] = (
    "first_name",
    "last_name",
    "email",
    "tdy_location",
    "contract_start_date",
    "contract_end_date",
    "contract_status",
    "per_diem_start_date",
    "per_diem_end_date",
)


@dataclass(frozen=True)
class CanonicalClientRecord:
    """Reconciled representation of one client across all four sources."""
    key: str
    in_v2: bool = False
    in_v3: bool = False
    in_v4: bool = False
    in_ledger: bool = False
    v2: SourceRecord | None = None
    v3: SourceRecord | None = None
    v4: SourceRecord | None = None
    ledger: LedgerRecord | None = None
    client_number: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    gov_email: str = ""
    cell: str = ""
    tdy_location: str = ""
    gov_agency_or_dept: str = ""
    tdy_type: str = ""
    deal_type: str = ""
    contract_status: str = ""
    has_roommates: bool | None = None
    total_roommates: float = 0.0
    per_diem_start_date: str = ""
    per_diem_end_date: str = ""
    contract_start_date: str = ""
    contract_end_date: str = ""
    max_lodging_allocation: float = 0.0
    liquidation_tax_rate: float = 0.0
    contract_tax_rate: float = 0.0
    payment_type: str = ""
    referral_source: str = ""
    referral_fee_type: str = ""
    sales_rep: str = ""
    lodging_tax_exempt: bool | None = None
    lodging_tax_reimbursable: bool | None = None
    tax_calculation_method: str = ""
    client_worksheet_url: str = ""
    number_of_nights: float = 0.0
    comments: str = ""
    created_at: str = ""
    updated_at: str = ""

    def payload_for(self, version: SourceVersion) -> SourceRecord | LedgerRecord | None:
        return getattr(self, version.value)

    @property
    def has_name(self) -> bool:
        return bool(self.first_name.strip() or self.last_name.strip())
