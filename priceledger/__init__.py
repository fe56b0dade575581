"""priceledger: invoice PDF parsing and product price reconciliation."""

__version__ = "0.1.0"
