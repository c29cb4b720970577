"""
powa-ops: PoWA snapshot collector and per-database statistics extraction
for PostgreSQL.
"""

__version__ = "0.1.0"
