"""
Core Lending System

Consumer loan lifecycle: credit-limit checked loan creation, installment
scheduling, payment allocation across due installments, and role-scoped
access to loan data. All financial math uses Decimal.
"""

__version__ = "1.0.0"
