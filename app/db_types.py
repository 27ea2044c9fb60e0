"""Database-agnostic type definitions for SQLAlchemy models.

These work with both PostgreSQL (production) and SQLite (local runs, tests).
"""
from sqlalchemy import JSON, Numeric, Uuid

# JSONB is PostgreSQL-specific, JSON works with both SQLite and PostgreSQL
JSONType = JSON

# Native UUID on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid

# Rupee amounts, 2 decimal places
MoneyType = Numeric(14, 2)

# Stock quantities may be fractional (kg, litre)
QuantityType = Numeric(14, 3)

# Percentages: tax rates, discounts
PercentType = Numeric(5, 2)
