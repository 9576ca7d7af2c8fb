"""
Family Ledger - Source Package

Ledger and budget engine for a family-finance app: profiles under one
family account, income/expense/transfer transactions, monthly budgets,
recurring charges, savings goals and money-request approvals.

DESIGN PRINCIPLES:
1. Transactions are the source of truth; counters are a cache
2. Money moves in one commit or not at all
3. Fail visibly, except the budget check which fails open
4. Every money movement is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Family Ledger Team"
