"""
Sales Ledger KPI Pipeline

Valid-sale filtering, multi-dimensional KPI aggregation and
volume-vs-price trend decomposition over a transactional sales ledger.
"""

__version__ = "1.0.0"
