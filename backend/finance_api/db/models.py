# finance_api/db/models.py: users, accounts, ledger (transactions + transfers), budgets, receipts
from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum, Float, ForeignKey, Integer, Numeric, String, Text,
    UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from .base import Base
import enum


class TransactionType(enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class CategoryType(enum.Enum):
    income = "income"
    expense = "expense"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    last_login = Column(DateTime, nullable=True)

    # relationships
    accounts = relationship("Account", back_populates="user", order_by="Account.id")
    categories = relationship("Category", back_populates="user")
    budgets = relationship("Budget", back_populates="user", cascade="all, delete-orphan")
    receipts = relationship("Receipt", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class AccountType(Base):
    __tablename__ = "account_types"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, unique=True)
    allows_negative_balance = Column(Boolean, nullable=False, default=False)
    is_asset = Column(Boolean, nullable=False, default=True)

    accounts = relationship("Account", back_populates="account_type")


class Account(Base):
    __tablename__ = "accounts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type_id = Column(Integer, ForeignKey("account_types.id"), nullable=False)
    name = Column(String(100), nullable=False)
    # written only by services.accounts.adjust_balance
    current_balance = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="accounts")
    account_type = relationship("AccountType", back_populates="accounts", lazy="joined")
    transactions = relationship(
        "Transaction", back_populates="account", cascade="all, delete-orphan"
    )


class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, index=True)
    # NULL owner means a system category visible to everyone
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    name = Column(String(150), nullable=False)
    type = Column(Enum(CategoryType), nullable=False)

    user = relationship("User", back_populates="categories")
    transactions = relationship("Transaction", back_populates="category")

    @property
    def is_system(self) -> bool:
        return self.user_id is None


class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    type = Column(Enum(TransactionType), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(200), nullable=False)
    transaction_date = Column(Date, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    # one receipt produces at most one transaction
    receipt_id = Column(Integer, ForeignKey("receipts.id", ondelete="SET NULL"), nullable=True, unique=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    account = relationship("Account", back_populates="transactions")
    category = relationship("Category", back_populates="transactions")
    receipt = relationship("Receipt", back_populates="transaction")

    @property
    def signed_amount(self):
        return self.amount if self.type == TransactionType.INCOME else -self.amount


class Transfer(Base):
    __tablename__ = "transfers"
    id = Column(Integer, primary_key=True, index=True)
    from_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    to_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    fee_amount = Column(Numeric(12, 2), nullable=False, default=0)
    description = Column(String(200), nullable=False)
    transfer_date = Column(Date, nullable=False, index=True)
    reference_number = Column(String(40), nullable=False, unique=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    from_account = relationship("Account", foreign_keys=[from_account_id])
    to_account = relationship("Account", foreign_keys=[to_account_id])


class Budget(Base):
    __tablename__ = "budgets"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_limit = Column(Numeric(12, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="budgets")
    allocations = relationship(
        "BudgetCategory", back_populates="budget", cascade="all, delete-orphan", order_by="BudgetCategory.id"
    )


class BudgetCategory(Base):
    __tablename__ = "budget_categories"
    __table_args__ = (UniqueConstraint("budget_id", "category_id", name="uq_budget_category"),)
    id = Column(Integer, primary_key=True, index=True)
    budget_id = Column(Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    allocated_amount = Column(Numeric(12, 2), nullable=False)

    budget = relationship("Budget", back_populates="allocations")
    category = relationship("Category", lazy="joined")


class Receipt(Base):
    __tablename__ = "receipts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    merchant_name = Column(String(255), nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    receipt_date = Column(Date, nullable=True)
    suggested_category = Column(String(100), nullable=True)
    confidence = Column(Float, nullable=False, default=0.0)
    image_key = Column(String(1024), nullable=False)
    image_url = Column(String(1024), nullable=False)
    raw_payload = Column(Text, nullable=True)
    transaction_created = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="receipts")
    transaction = relationship("Transaction", back_populates="receipt", uselist=False)
