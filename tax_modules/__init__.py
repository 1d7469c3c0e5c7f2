"""
Tax Modules.

Thin orchestration layers over the Tax Kernel and Engines.

Modules:
- Calculation: order tax calculation, estimates, address checks, and the
  administrative commands that maintain jurisdictions, rates and exemptions

Actual tax arithmetic lives in the engines.
"""

from tax_modules import calculation

__all__ = ["calculation"]
