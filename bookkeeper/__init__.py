"""
Bookkeeper - Source Package

Bookkeeping for small businesses: bank statement and CSV import,
transaction categorization, payee/vendor and income-source assignment,
inventory tracking, receipts and tax reports.

DESIGN PRINCIPLES:
1. Records are flat and reference each other by id
2. Rules classify first, AI second, humans last
3. Every mutation is auditable
4. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Bookkeeper Team"
