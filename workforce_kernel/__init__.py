"""
Workforce Kernel - PO amendment lifecycle

Persistence and decision core for project purchase orders:
- Projects, employee-project assignments, PO amendments
- Date-driven selection of the single active amendment per owner
- Minimal, idempotent reconciliation of stored ``is_active`` flags
- Typed errors, structured logging, injectable clock
"""

__version__ = "0.1.0"
