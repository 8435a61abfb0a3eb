"""
일당노트 (ildang) - Source Package

A local-first ledger for day-wage workers: record each work day
(site, wage, paid/unpaid, day-off) and turn any date range into a
payment-claim report.

DESIGN PRINCIPLES:
1. The store owns every record; everything downstream reads snapshots
2. Validate before you mutate
3. Totals are computed, never stored
4. Every write is observable, and only after it commits
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ildang Team"
