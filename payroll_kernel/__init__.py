"""
Payroll Kernel

Shared infrastructure for the payroll cycle engine:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Injectable clock and Decimal money rounding
- Workflow value types for lifecycle state machines
- SQLAlchemy declarative base and engine management
"""

__version__ = "0.1.0"
