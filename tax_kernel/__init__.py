"""
Tax Kernel - shared foundation for the tax calculation engine.

Provides:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Injectable clocks for deterministic effective-date checks
- Immutable domain DTOs (addresses, jurisdictions, rates, exemptions, results)
- SQLAlchemy declarative base and engine/session management
"""

__version__ = "0.1.0"
