"""ORM models for the workforce kernel."""

from workforce_kernel.models.po_amendment import PoAmendmentModel, owner_key_for
from workforce_kernel.models.project import EmployeeProjectModel, ProjectModel

__all__ = [
    "EmployeeProjectModel",
    "PoAmendmentModel",
    "ProjectModel",
    "owner_key_for",
]
