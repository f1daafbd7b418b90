"""
Deficit records (cash shortfalls at shift end).

WHY: A worker who surrenders less cash than the shift's sales owes the
difference. Each shortfall is tracked until it is settled in cash, through
the print/sign/archive workflow, or by payroll deduction.

DESIGN:
- Records are plain dataclasses held by the DeficitRecordStore and persisted
  as one JSON document in the key-value table (see services/deficit_store.py).
- All amounts are integer cents.
- remaining_balance_cents is derived from short_amount_cents and the payment
  ledger; the store recomputes it on every commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from cashdesk.time_utils import parse_iso_datetime, to_utc_z


STATUS_PENDING = "pending"
STATUS_OVERDUE = "overdue"
STATUS_PAID = "paid"
VALID_STATUSES = (STATUS_PENDING, STATUS_OVERDUE, STATUS_PAID)

# Morning / evening / night
SHIFTS = ("Matin", "Soir", "Nuit")
DEFAULT_SHIFT = "Matin"

METHOD_CASH = "cash"
METHOD_BANK = "bank"
METHOD_MOBILE = "mobile"
METHOD_PAYROLL = "payroll"
MANUAL_PAYMENT_METHODS = (METHOD_CASH, METHOD_BANK, METHOD_MOBILE)
PAYMENT_METHODS = MANUAL_PAYMENT_METHODS + (METHOD_PAYROLL,)

DEFAULT_DEFICIT_NOTE = "Nouveau déficit"
DEFAULT_PAYMENT_NOTE = "Paiement partiel"

# Workflow flags are always reset together
WORKFLOW_RESET = {
    "receipt_printed": False,
    "receipt_number": None,
    "print_date": None,
    "vendor_signed": False,
    "manager_signed": False,
    "receipt_copy_archived": False,
    "copies_printed": 0,
}


@dataclass
class PartialPayment:
    id: str
    timestamp: datetime
    amount_cents: int
    notes: str | None = None
    method: str = METHOD_CASH
    # True for entries written by the engine (archive settlement, payroll deduction)
    synthesized: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": to_utc_z(self.timestamp),
            "amount_cents": self.amount_cents,
            "notes": self.notes,
            "method": self.method,
            "synthesized": self.synthesized,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PartialPayment":
        return cls(
            id=str(data["id"]),
            timestamp=parse_iso_datetime(data["timestamp"]),
            amount_cents=int(data["amount_cents"]),
            notes=data.get("notes"),
            method=data.get("method") or METHOD_CASH,
            synthesized=bool(data.get("synthesized", False)),
        )


@dataclass(frozen=True)
class DeficitDraft:
    """Intake form contents for a new deficit."""
    date: date
    total_sales_cents: int
    money_given_cents: int
    shift: str = DEFAULT_SHIFT
    notes: str | None = None
    employee_id: str | None = None
    till_number: str | None = None
    manager_name: str | None = None
    witness_name: str | None = None


@dataclass
class DeficitRecord:
    id: int
    date: date
    due_date: date
    shift: str

    # Financial facts (immutable after creation)
    total_sales_cents: int
    money_given_cents: int
    short_amount_cents: int

    # Ledger state
    remaining_balance_cents: int
    partial_payments: list[PartialPayment] = field(default_factory=list)

    # Lifecycle
    status: str = STATUS_PENDING
    original_status: str = STATUS_PENDING
    was_overdue: bool = False
    days_overdue: int = 0

    # Payroll settlement
    paid_from_payroll: bool = False
    payroll_period: str | None = None

    # Settlement workflow
    receipt_printed: bool = False
    receipt_number: str | None = None
    print_date: datetime | None = None
    vendor_signed: bool = False
    manager_signed: bool = False
    receipt_copy_archived: bool = False
    copies_printed: int = 0

    # Context / reporting
    notes: str | None = None
    employee_id: str | None = None
    till_number: str | None = None
    manager_name: str | None = None
    witness_name: str | None = None
    cancellation_reason: str | None = None

    created_at: datetime | None = None

    @property
    def total_paid_cents(self) -> int:
        return sum(p.amount_cents for p in self.partial_payments)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "shift": self.shift,
            "total_sales_cents": self.total_sales_cents,
            "money_given_cents": self.money_given_cents,
            "short_amount_cents": self.short_amount_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "partial_payments": [p.to_dict() for p in self.partial_payments],
            "status": self.status,
            "original_status": self.original_status,
            "was_overdue": self.was_overdue,
            "days_overdue": self.days_overdue,
            "paid_from_payroll": self.paid_from_payroll,
            "payroll_period": self.payroll_period,
            "receipt_printed": self.receipt_printed,
            "receipt_number": self.receipt_number,
            "print_date": to_utc_z(self.print_date),
            "vendor_signed": self.vendor_signed,
            "manager_signed": self.manager_signed,
            "receipt_copy_archived": self.receipt_copy_archived,
            "copies_printed": self.copies_printed,
            "notes": self.notes,
            "employee_id": self.employee_id,
            "till_number": self.till_number,
            "manager_name": self.manager_name,
            "witness_name": self.witness_name,
            "cancellation_reason": self.cancellation_reason,
            "created_at": to_utc_z(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DeficitRecord":
        return cls(
            id=int(data["id"]),
            date=date.fromisoformat(data["date"]),
            due_date=date.fromisoformat(data["due_date"]),
            shift=data.get("shift") or DEFAULT_SHIFT,
            total_sales_cents=int(data["total_sales_cents"]),
            money_given_cents=int(data["money_given_cents"]),
            short_amount_cents=int(data["short_amount_cents"]),
            remaining_balance_cents=int(data["remaining_balance_cents"]),
            partial_payments=[PartialPayment.from_dict(p) for p in data.get("partial_payments") or []],
            status=data["status"],
            original_status=data.get("original_status") or STATUS_PENDING,
            was_overdue=bool(data.get("was_overdue", False)),
            days_overdue=int(data.get("days_overdue") or 0),
            paid_from_payroll=bool(data.get("paid_from_payroll", False)),
            payroll_period=data.get("payroll_period"),
            receipt_printed=bool(data.get("receipt_printed", False)),
            receipt_number=data.get("receipt_number"),
            print_date=parse_iso_datetime(data.get("print_date")),
            vendor_signed=bool(data.get("vendor_signed", False)),
            manager_signed=bool(data.get("manager_signed", False)),
            receipt_copy_archived=bool(data.get("receipt_copy_archived", False)),
            copies_printed=int(data.get("copies_printed") or 0),
            notes=data.get("notes"),
            employee_id=data.get("employee_id"),
            till_number=data.get("till_number"),
            manager_name=data.get("manager_name"),
            witness_name=data.get("witness_name"),
            cancellation_reason=data.get("cancellation_reason"),
            created_at=parse_iso_datetime(data.get("created_at")),
        )
