"""Legacy client workbook reconciliation (V2/V3/V4 client tabs + accounting ledger)."""

__version__ = "0.1.0"
