# affiliate_system/services/stats_service.py
"""
Partner-facing read models: dashboard, my-customers, customer detail,
payment history.

Rows are read once, converted into CommissionView at the store boundary,
and every figure is a fold over those views. No writes.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging
import math

from sqlalchemy.orm import Session

from models.partner import Partner
from models.commission_record import CommissionRecord
from models.stats_adjustment import StatsAdjustment
from models.payment_batch import PaymentBatch
from models.voucher_tracking import VoucherTracking
from models.withdrawal import WithdrawalRequest
from models.f1_assignment import F1CustomerAssignment
from affiliate_system.config.statuses import AdjustmentType, CommissionStatus, WithdrawalStatus
from affiliate_system.errors import NotFoundError, ValidationError
from affiliate_system.services.tier_service import TierService
from affiliate_system.utils.money import ZERO, to_decimal
from affiliate_system.utils.time_machine import timeMachine
from affiliate_system.utils.validators import normalize_phone, parse_positive_int

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 5
MAX_PAGE_SIZE = 100


# =============================================================================
# TYPED VIEWS AND FOLDS
# =============================================================================

@dataclass
class CommissionView:
    """Commission record with numeric columns parsed to Decimal."""
    id: int
    status: str
    f1_customer_id: Optional[str]
    f1_phone: Optional[str]
    f1_name: Optional[str]
    invoice_code: str
    invoice_amount: Decimal
    invoice_date: Optional[datetime]
    basic_amount: Decimal
    first_order_amount: Decimal
    tier_bonus_amount: Decimal
    total_commission: Decimal
    is_lifetime_commission: bool
    tier_code: Optional[str]
    commission_month: Optional[str]
    locked_at: Optional[datetime]
    paid_at: Optional[datetime]
    payment_batch_id: Optional[int]
    invoice_cancelled_after_paid: bool

    @classmethod
    def fromRecord(cls, record: CommissionRecord) -> "CommissionView":
        return cls(
            id=record.id,
            status=record.status,
            f1_customer_id=record.f1_customer_id,
            f1_phone=record.f1_phone,
            f1_name=record.f1_name,
            invoice_code=record.invoice_code,
            invoice_amount=to_decimal(record.invoice_amount, "invoice_amount"),
            invoice_date=record.invoice_date,
            basic_amount=to_decimal(record.basic_amount, "basic_amount"),
            first_order_amount=to_decimal(record.first_order_amount, "first_order_amount"),
            tier_bonus_amount=to_decimal(record.tier_bonus_amount, "tier_bonus_amount"),
            total_commission=to_decimal(record.total_commission, "total_commission"),
            is_lifetime_commission=bool(record.is_lifetime_commission),
            tier_code=record.tier_code,
            commission_month=record.commission_month,
            locked_at=record.locked_at,
            paid_at=record.paid_at,
            payment_batch_id=record.payment_batch_id,
            invoice_cancelled_after_paid=bool(record.invoice_cancelled_after_paid),
        )

    def toDict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "invoice_code": self.invoice_code,
            "invoice_amount": self.invoice_amount,
            "invoice_date": self.invoice_date,
            "f1_customer_id": self.f1_customer_id,
            "f1_name": self.f1_name,
            "basic_amount": self.basic_amount,
            "first_order_amount": self.first_order_amount,
            "tier_bonus_amount": self.tier_bonus_amount,
            "total_commission": self.total_commission,
            "is_lifetime_commission": self.is_lifetime_commission,
            "tier_code": self.tier_code,
            "commission_month": self.commission_month,
            "locked_at": self.locked_at,
            "paid_at": self.paid_at,
            "invoice_cancelled_after_paid": self.invoice_cancelled_after_paid,
        }


@dataclass
class StatusTotals:
    """A quantity partitioned by commission status."""
    pending: Decimal = ZERO
    locked: Decimal = ZERO
    paid: Decimal = ZERO
    cancelled: Decimal = ZERO

    def add(self, status: str, amount: Decimal):
        if status in (s.value for s in CommissionStatus):
            setattr(self, status, getattr(self, status) + amount)

    @property
    def total(self) -> Decimal:
        """Cancelled excluded."""
        return self.pending + self.locked + self.paid

    def toDict(self) -> Dict[str, Decimal]:
        return {
            "pending": self.pending,
            "locked": self.locked,
            "paid": self.paid,
            "cancelled": self.cancelled,
            "total": self.total,
        }


@dataclass
class ComponentBreakdown:
    basic: Decimal = ZERO
    first_order: Decimal = ZERO
    tier_bonus: Decimal = ZERO
    count: int = 0

    @property
    def total(self) -> Decimal:
        return self.basic + self.first_order + self.tier_bonus


def fold_by_status(
        views: Iterable[CommissionView],
        value: Callable[[CommissionView], Decimal]
) -> StatusTotals:
    totals = StatusTotals()
    for view in views:
        totals.add(view.status, value(view))
    return totals


def fold_breakdown(views: Iterable[CommissionView]) -> ComponentBreakdown:
    """Component sums over non-cancelled records."""
    breakdown = ComponentBreakdown()
    for view in views:
        if view.status == CommissionStatus.CANCELLED.value:
            continue
        breakdown.basic += view.basic_amount
        breakdown.first_order += view.first_order_amount
        breakdown.tier_bonus += view.tier_bonus_amount
        breakdown.count += 1
    return breakdown


def _commission(view: CommissionView) -> Decimal:
    return view.total_commission


def _revenue(view: CommissionView) -> Decimal:
    return view.invoice_amount


def _one(view: CommissionView) -> Decimal:
    return Decimal(1)


def _counts(totals: StatusTotals) -> Dict[str, int]:
    return {key: int(value) for key, value in totals.toDict().items()}


@dataclass
class CustomerSummary:
    """One referred customer as seen by their partner."""
    f1_customer_id: str
    f1_name: Optional[str] = None
    f1_phone: Optional[str] = None
    views: List[CommissionView] = field(default_factory=list)

    @property
    def lastOrderDate(self) -> datetime:
        dates = [v.invoice_date for v in self.views if v.invoice_date]
        return max(dates) if dates else datetime.min

    def toDict(self) -> Dict[str, Any]:
        dates = [v.invoice_date for v in self.views if v.invoice_date]
        return {
            "f1_customer_id": self.f1_customer_id,
            "f1_name": self.f1_name,
            "f1_phone": self.f1_phone,
            "first_order_date": min(dates) if dates else None,
            "last_order_date": max(dates) if dates else None,
            "orders": _counts(fold_by_status(self.views, _one)),
            "revenue": fold_by_status(self.views, _revenue).toDict(),
            "commission": fold_by_status(self.views, _commission).toDict(),
        }


# =============================================================================
# SERVICE
# =============================================================================

class StatsService:
    """Read models for partner dashboards."""

    def __init__(self, session: Session):
        self.session = session

    def _getPartner(self, partnerId: int) -> Partner:
        partner = self.session.query(Partner).filter_by(id=partnerId).first()
        if not partner:
            raise NotFoundError(f"Partner {partnerId} not found")
        return partner

    def _views(self, partnerId: int, *criteria) -> List[CommissionView]:
        records = self.session.query(CommissionRecord).filter(
            CommissionRecord.f0_id == partnerId,
            *criteria
        ).order_by(CommissionRecord.id.asc()).all()
        return [CommissionView.fromRecord(record) for record in records]

    # ═══════════════════════════════════════════════════════════════════
    # DASHBOARD
    # ═══════════════════════════════════════════════════════════════════

    async def getDashboard(self, partnerId: int) -> Dict[str, Any]:
        """
        Full dashboard for one partner.

        Raises:
            NotFoundError: Unknown partner
            ConfigurationError: Tier ladder missing or malformed
        """
        partner = self._getPartner(partnerId)
        views = self._views(partnerId)

        commission = fold_by_status(views, _commission)
        revenue = fold_by_status(views, _revenue)
        orders = fold_by_status(views, _one)
        breakdown = fold_breakdown(views)

        tierProgress = await TierService(self.session).getTierProgress(partnerId)
        qualification = tierProgress.pop("qualification")

        withdrawals = self._withdrawalTotals(partnerId, commission.locked)

        stats = {
            "pending_commission": commission.pending,
            "locked_commission": commission.locked,
            "paid_commission": commission.paid,
            "cancelled_commission": commission.cancelled,
            "total_commission": commission.total,
            "commissionBreakdown": {
                "basic": breakdown.basic,
                "first_order": breakdown.first_order,
                "tier_bonus": breakdown.tier_bonus,
                "total": breakdown.total,
            },
            "revenue": revenue.toDict(),
            "orders": _counts(orders),
            "qualifiedF1Count": qualification.adjusted_referral_count,
            "totalF1Revenue": qualification.adjusted_revenue,
            "rawF1Count": qualification.raw_referral_count,
            "rawF1Revenue": qualification.raw_revenue,
            "referrals": self._referralCounts(partnerId),
            **withdrawals,
            "adjustments": self._adjustmentSummary(partnerId),
        }

        return {
            "success": True,
            "partner": {
                "id": partner.id,
                "f0_code": partner.f0_code,
                "full_name": partner.full_name,
                "current_tier": partner.current_tier,
            },
            "stats": stats,
            "tier": tierProgress,
            "recentActivity": self._recentActivity(partnerId),
        }

    def _withdrawalTotals(self, partnerId: int, lockedCommission: Decimal) -> Dict[str, Decimal]:
        rows = self.session.query(WithdrawalRequest.status, WithdrawalRequest.amount).filter(
            WithdrawalRequest.f0_id == partnerId
        ).all()

        pending = ZERO
        completed = ZERO
        for status, amount in rows:
            amount = to_decimal(amount, "withdrawal amount")
            if status in (WithdrawalStatus.PENDING.value, WithdrawalStatus.PROCESSING.value):
                pending += amount
            elif status == WithdrawalStatus.COMPLETED.value:
                completed += amount

        return {
            "pending_withdrawals": pending,
            "completed_withdrawals": completed,
            "available_balance": max(ZERO, lockedCommission - pending),
        }

    def _referralCounts(self, partnerId: int) -> Dict[str, int]:
        base = self.session.query(VoucherTracking).filter(VoucherTracking.f0_id == partnerId)
        return {
            "total": base.count(),
            "active": base.filter(
                VoucherTracking.activation_status.in_(("activated", "used"))
            ).count(),
            "thisQuarter": base.filter(
                VoucherTracking.created_at >= timeMachine.quarterStart
            ).count(),
        }

    def _adjustmentSummary(self, partnerId: int) -> Dict[str, Any]:
        adjustments = self.session.query(StatsAdjustment).filter_by(f0_id=partnerId).all()

        summary = {
            "f1Adjustment": 0,
            "revenueAdjustment": ZERO,
            "commissionAdjustment": ZERO,
            "invoicesCancelledAfterPaid": 0,
            "invoicesCancelledBeforePaid": 0,
            "totalCancelledInvoices": len(adjustments),
        }
        for adjustment in adjustments:
            summary["f1Adjustment"] += int(adjustment.f1_adjustment or 0)
            summary["revenueAdjustment"] += to_decimal(adjustment.revenue_adjustment, "revenue_adjustment")
            summary["commissionAdjustment"] += to_decimal(
                adjustment.commission_adjustment, "commission_adjustment"
            )
            if adjustment.adjustment_type == AdjustmentType.INVOICE_CANCELLED_AFTER_PAID.value:
                summary["invoicesCancelledAfterPaid"] += 1
            else:
                summary["invoicesCancelledBeforePaid"] += 1
        return summary

    def _recentActivity(self, partnerId: int) -> List[Dict[str, Any]]:
        vouchers = self.session.query(VoucherTracking).filter(
            VoucherTracking.f0_id == partnerId
        ).order_by(VoucherTracking.created_at.desc()).limit(RECENT_ACTIVITY_LIMIT).all()

        return [
            {
                "voucher_code": v.code,
                "recipient_name": v.recipient_name,
                "recipient_phone": v.recipient_phone,
                "activation_status": v.activation_status,
                "commission_status": v.commission_status,
                "invoice_amount": to_decimal(v.invoice_amount, "invoice_amount") if v.invoice_amount is not None else None,
                "created_at": v.created_at,
            }
            for v in vouchers
        ]

    # ═══════════════════════════════════════════════════════════════════
    # MY CUSTOMERS
    # ═══════════════════════════════════════════════════════════════════

    async def getMyCustomers(
            self,
            partnerId: int,
            searchPhone: Optional[str] = None,
            page: Any = 1,
            limit: Any = 20
    ) -> Dict[str, Any]:
        """
        Paginated referred customers with per-status order, revenue and
        commission breakdown. Newest activity first.

        Raises:
            NotFoundError: Unknown partner
            ValidationError: Bad page or limit
        """
        self._getPartner(partnerId)
        page = parse_positive_int(page, "page", 1)
        limit = min(parse_positive_int(limit, "limit", 20), MAX_PAGE_SIZE)

        criteria = []
        if searchPhone:
            needle = normalize_phone(searchPhone)
            criteria.append(CommissionRecord.f1_phone.like(f"%{needle}%"))

        customers: Dict[str, CustomerSummary] = {}
        for view in self._views(partnerId, *criteria):
            key = view.f1_customer_id or view.f1_phone or view.invoice_code
            customer = customers.setdefault(key, CustomerSummary(f1_customer_id=key))
            customer.f1_name = customer.f1_name or view.f1_name
            customer.f1_phone = customer.f1_phone or view.f1_phone
            customer.views.append(view)

        assignments = {
            a.f1_customer_id: a for a in self.session.query(F1CustomerAssignment).filter(
                F1CustomerAssignment.f0_id == partnerId
            ).all()
        }

        ordered = sorted(customers.values(), key=lambda c: c.lastOrderDate, reverse=True)
        total = len(ordered)
        start = (page - 1) * limit

        items = []
        for customer in ordered[start:start + limit]:
            item = customer.toDict()
            assignment = assignments.get(customer.f1_customer_id)
            item["assigned_at"] = assignment.assigned_at if assignment else None
            item["assigned_tier"] = assignment.tier_code if assignment else None
            items.append(item)

        allViews = [view for customer in ordered for view in customer.views]

        return {
            "success": True,
            "customers": items,
            "summary": {
                "totalCustomers": total,
                "orders": _counts(fold_by_status(allViews, _one)),
                "revenue": fold_by_status(allViews, _revenue).toDict(),
                "commission": fold_by_status(allViews, _commission).toDict(),
            },
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }

    async def getCustomerDetail(self, partnerId: int, phone: Optional[str]) -> Dict[str, Any]:
        """
        One referred customer, looked up by phone, with every order.

        Raises:
            NotFoundError: Unknown partner, or no orders for that phone
            ValidationError: Empty phone
        """
        self._getPartner(partnerId)
        normalized = normalize_phone(phone.strip() if isinstance(phone, str) else phone)
        if not normalized:
            raise ValidationError("f1_phone is required")

        views = self._views(partnerId, CommissionRecord.f1_phone == normalized)
        if not views:
            raise NotFoundError(f"No customer with phone {normalized} for partner {partnerId}")

        first = views[0]
        customer = CustomerSummary(
            f1_customer_id=first.f1_customer_id or normalized,
            f1_name=next((v.f1_name for v in views if v.f1_name), None),
            f1_phone=normalized,
            views=views,
        )

        assignment = self.session.query(F1CustomerAssignment).filter(
            F1CustomerAssignment.f0_id == partnerId,
            F1CustomerAssignment.f1_customer_id == customer.f1_customer_id
        ).first()

        item = customer.toDict()
        item["assigned_at"] = assignment.assigned_at if assignment else None
        item["assigned_tier"] = assignment.tier_code if assignment else None

        breakdown = fold_breakdown(views)
        orders = sorted(views, key=lambda v: v.invoice_date or datetime.min, reverse=True)

        return {
            "success": True,
            "customer": item,
            "orders": [v.toDict() for v in orders],
            "breakdown": {
                "basic_total": breakdown.basic,
                "first_order_total": breakdown.first_order,
                "tier_bonus_total": breakdown.tier_bonus,
                "total": breakdown.total,
                "count": breakdown.count,
            },
        }

    # ═══════════════════════════════════════════════════════════════════
    # PAYMENT HISTORY
    # ═══════════════════════════════════════════════════════════════════

    async def getPaymentHistory(
            self,
            partnerId: int,
            action: Optional[str] = None,
            batchId: Any = None
    ) -> Dict[str, Any]:
        """
        action None/"list": batches that paid this partner, plus locked
        and pending records awaiting payment.
        action "detail": one batch's records with component breakdown.

        Raises:
            NotFoundError: Unknown partner or batch
            ValidationError: Unknown action or missing batch id
        """
        self._getPartner(partnerId)

        if action in (None, "", "list"):
            return self._paymentList(partnerId)
        if action == "detail":
            if batchId is None:
                raise ValidationError("batch_id is required for detail")
            return self._batchDetail(partnerId, parse_positive_int(batchId, "batch_id", 0))

        raise ValidationError(f"Unknown payment history action '{action}'")

    def _paymentList(self, partnerId: int) -> Dict[str, Any]:
        views = self._views(partnerId)

        paidByBatch: Dict[int, List[CommissionView]] = {}
        for view in views:
            if view.status == CommissionStatus.PAID.value and view.payment_batch_id:
                paidByBatch.setdefault(view.payment_batch_id, []).append(view)

        batches = {
            b.id: b for b in self.session.query(PaymentBatch).filter(
                PaymentBatch.id.in_(list(paidByBatch.keys()))
            ).all()
        } if paidByBatch else {}

        batchList = []
        for batchId, batchViews in paidByBatch.items():
            batch = batches.get(batchId)
            batchList.append({
                "batch_id": batchId,
                "payment_month": batch.payment_month if batch else None,
                "payment_date": batch.payment_date if batch else None,
                "status": batch.status if batch else None,
                "f0_amount": sum((v.total_commission for v in batchViews), ZERO),
                "f0_commission_count": len(batchViews),
                "f0_commission_months": sorted({v.commission_month for v in batchViews if v.commission_month}),
            })
        batchList.sort(key=lambda b: b["payment_date"] or datetime.min, reverse=True)

        locked = [v for v in views if v.status == CommissionStatus.LOCKED.value]
        pending = [v for v in views if v.status == CommissionStatus.PENDING.value]
        totals = fold_by_status(views, _commission)

        return {
            "success": True,
            "batches": batchList,
            "lockedUnpaid": [v.toDict() for v in locked],
            "pending": [v.toDict() for v in pending],
            "summary": {
                "totalPaid": totals.paid,
                "totalLocked": totals.locked,
                "totalPending": totals.pending,
                "batchCount": len(batchList),
            },
        }

    def _batchDetail(self, partnerId: int, batchId: int) -> Dict[str, Any]:
        batch = self.session.query(PaymentBatch).filter_by(id=batchId).first()
        if not batch:
            raise NotFoundError(f"Payment batch {batchId} not found")

        views = self._views(partnerId, CommissionRecord.payment_batch_id == batchId)
        if not views:
            raise NotFoundError(f"Partner {partnerId} has no commissions in batch {batchId}")

        breakdown = fold_breakdown(views)

        return {
            "success": True,
            "batch": {
                "batch_id": batch.id,
                "payment_month": batch.payment_month,
                "payment_date": batch.payment_date,
                "status": batch.status,
                "completed_at": batch.completed_at,
            },
            "records": [v.toDict() for v in views],
            "breakdown": {
                "basic_total": breakdown.basic,
                "first_order_total": breakdown.first_order,
                "tier_bonus_total": breakdown.tier_bonus,
                "total": breakdown.total,
                "count": breakdown.count,
            },
        }
