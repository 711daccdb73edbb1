"""
Module: workforce_kernel.models.project
Responsibility: ORM persistence for projects and employee-project
    assignments, the two kinds of PO amendment owner.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py (DTO conversion) only.

Invariants enforced:
    - status is one of ProjectStatus values; only "Active" projects are
      enumerated by the PO scheduler.
    - One assignment per (employee_id, project_id) (uq_employee_project).
    - allocation_percentage within 0..100 (ck_allocation_range).

Failure modes:
    - IntegrityError on a duplicate (employee, project) assignment.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from workforce_kernel.domain.types import EmployeeProject, Project


class ProjectModel(TrackedBase):
    """Client project record."""

    __tablename__ = "projects"

    __table_args__ = (
        Index("ix_projects_status", "status"),
        Index("ix_projects_client", "client"),
        Index("ix_projects_name", "name"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    client: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_date: Mapped[date | None] = mapped_column(nullable=True)
    end_date: Mapped[date | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Active")
    po_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    assignments: Mapped[list["EmployeeProjectModel"]] = relationship(
        "EmployeeProjectModel",
        back_populates="project",
        cascade="all, delete-orphan",
    )

    def to_dto(self) -> Project:
        from workforce_kernel.domain.types import Project, ProjectStatus

        return Project(
            project_id=self.id,
            name=self.name,
            client=self.client,
            status=ProjectStatus(self.status),
            description=self.description,
            department=self.department,
            start_date=self.start_date,
            end_date=self.end_date,
            po_number=self.po_number,
        )

    @classmethod
    def from_dto(cls, dto: Project) -> ProjectModel:
        return cls(
            id=dto.project_id,
            name=dto.name,
            client=dto.client,
            status=dto.status.value,
            description=dto.description,
            department=dto.department,
            start_date=dto.start_date,
            end_date=dto.end_date,
            po_number=dto.po_number,
        )


class EmployeeProjectModel(TrackedBase):
    """Allocation of one employee to one project."""

    __tablename__ = "employee_projects"

    __table_args__ = (
        UniqueConstraint("employee_id", "project_id", name="uq_employee_project"),
        CheckConstraint(
            "allocation_percentage >= 0 AND allocation_percentage <= 100",
            name="ck_allocation_range",
        ),
        Index("ix_employee_projects_employee", "employee_id"),
        Index("ix_employee_projects_project", "project_id"),
    )

    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    allocation_percentage: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date | None] = mapped_column(nullable=True)
    role_in_project: Mapped[str | None] = mapped_column(String(255), nullable=True)
    po_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    billing_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    billing_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    project: Mapped["ProjectModel"] = relationship(
        "ProjectModel",
        back_populates="assignments",
    )

    def to_dto(self) -> EmployeeProject:
        from workforce_kernel.domain.types import BillingType, EmployeeProject

        return EmployeeProject(
            assignment_id=self.id,
            employee_id=self.employee_id,
            project_id=self.project_id,
            allocation_percentage=self.allocation_percentage,
            start_date=self.start_date,
            end_date=self.end_date,
            role_in_project=self.role_in_project,
            po_number=self.po_number,
            billing_type=BillingType(self.billing_type) if self.billing_type else None,
            billing_rate=self.billing_rate,
        )
