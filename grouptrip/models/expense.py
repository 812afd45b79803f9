"""Activity expense and expense split ORM models (multi-payer)."""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from grouptrip.models import Base, BaseModel


class ActivityExpense(Base, BaseModel):
    """Expense attached to one activity.

    Attributes:
        activity_id: Owning activity
        description: What was bought
        amount: Nominal amount; owed splits must add up to it
        currency: ISO 4217 code
        paid_by: DEPRECATED single payer. Splits with is_payer are the source
            of truth; this column mirrors the largest payer for old readers.
    """

    __tablename__ = "activity_expenses"

    activity_id: Mapped[int] = mapped_column(
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    paid_by: Mapped[int | None] = mapped_column(
        ForeignKey("group_members.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="DEPRECATED: use activity_expense_splits.is_payer instead",
    )

    # Relationships
    activity: Mapped["Activity"] = relationship(  # noqa: F821
        "Activity", back_populates="expenses"
    )
    splits: Mapped[list["ActivityExpenseSplit"]] = relationship(
        "ActivityExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (CheckConstraint("amount > 0", name="check_expense_amount"),)

    def __repr__(self) -> str:
        return (
            f"<ActivityExpense(id={self.id}, activity_id={self.activity_id}, "
            f"amount={self.amount} {self.currency})>"
        )


class ActivityExpenseSplit(Base, BaseModel):
    """One row per (expense, group member).

    A row can carry both sides at once: what the member paid (is_payer,
    paid_amount) and what the member owes (amount).
    """

    __tablename__ = "activity_expense_splits"

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("activity_expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    group_member_id: Mapped[int] = mapped_column(
        ForeignKey("group_members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Amount this member owes for the expense",
    )
    is_payer: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="TRUE if this member paid for the expense (multiple payers allowed)",
    )
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Amount paid by this member (only if is_payer)",
    )
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    expense: Mapped["ActivityExpense"] = relationship(
        "ActivityExpense", back_populates="splits"
    )
    member: Mapped["GroupMember"] = relationship("GroupMember")  # noqa: F821

    __table_args__ = (
        UniqueConstraint("expense_id", "group_member_id", name="unique_expense_member"),
        CheckConstraint("amount >= 0", name="check_split_amount"),
        CheckConstraint(
            "(NOT is_payer AND paid_amount = 0) OR (is_payer AND paid_amount > 0)",
            name="check_payer_amount",
        ),
        Index("idx_activity_splits_payer", "expense_id", "is_payer"),
    )

    def __repr__(self) -> str:
        return (
            f"<ActivityExpenseSplit(id={self.id}, expense_id={self.expense_id}, "
            f"member_id={self.group_member_id}, owed={self.amount}, "
            f"is_payer={self.is_payer}, paid={self.paid_amount})>"
        )


__all__ = ["ActivityExpense", "ActivityExpenseSplit"]
