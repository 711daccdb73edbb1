"""
Module: workforce_kernel.models.po_amendment
Responsibility: ORM persistence for PO amendments -- dated revisions of a
    client purchase order, owned by a project or by one employee-project
    assignment of that project.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py (DTO conversion) only.

Invariants enforced:
    - ``owner_key`` is "project:<project_id>" or "assignment:<assignment_id>"
      and is derived on construction; every owner-scoped query filters on it.
    - At most one row per owner_key has is_active = true
      (uq_po_amendments_one_active, partial unique index).
    - end_date, when present, is not before start_date (ck_po_amendment_range).

Failure modes:
    - IntegrityError if a write would flag a second active amendment for
      the same owner; the store orders its clear-then-set updates so this
      only fires on a concurrent writer.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from workforce_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from workforce_kernel.domain.types import OwnerRef, PoAmendment


def owner_key_for(owner: OwnerRef) -> str:
    return str(owner)


class PoAmendmentModel(TrackedBase):
    """Persistent PO amendment (is_active written only by recalculation)."""

    __tablename__ = "po_amendments"

    __table_args__ = (
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_po_amendment_range",
        ),
        Index("ix_po_amendments_owner_key", "owner_key"),
        Index("ix_po_amendments_project", "project_id"),
        Index("ix_po_amendments_is_active", "is_active"),
        Index(
            "uq_po_amendments_one_active",
            "owner_key",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    assignment_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("employee_projects.id", ondelete="CASCADE"),
        nullable=True,
    )
    owner_key: Mapped[str] = mapped_column(String(80), nullable=False)
    po_number: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def to_dto(self) -> PoAmendment:
        from workforce_kernel.domain.types import PoAmendment

        return PoAmendment(
            amendment_id=self.id,
            project_id=self.project_id,
            assignment_id=self.assignment_id,
            po_number=self.po_number,
            start_date=self.start_date,
            end_date=self.end_date,
            is_active=self.is_active,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_dto(cls, dto: PoAmendment) -> PoAmendmentModel:
        return cls(
            id=dto.amendment_id,
            project_id=dto.project_id,
            assignment_id=dto.assignment_id,
            owner_key=owner_key_for(dto.owner),
            po_number=dto.po_number,
            start_date=dto.start_date,
            end_date=dto.end_date,
            is_active=dto.is_active,
        )
