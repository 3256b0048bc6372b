"""
Payroll Modules.

Orchestration layers over the payroll kernel and engines.  Each module
contains:
- Domain models (the nouns)
- Workflows (state machines)
- Configuration schemas (policy and settings)
- A service facade owning the transaction boundary

Modules:
- Cycle: payroll cycles, payslips, processing and payment

Actual calculation logic lives in the engines.
"""

from payroll_modules import cycle

__all__ = ["cycle"]
