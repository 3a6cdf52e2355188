# Overview: Pytest coverage for FEFO batch allocation.

"""
FEFO allocation tests.

Verifies:
- Soonest-expiring lots are consumed first, spilling into the next lot
- Shortfalls raise AllocationError and plan nothing
- Applying a plan decrements exactly the planned lots
- Expiry alert levels and the expiring-batches window
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from pharmasync.models import ProductBatch
from pharmasync.services import fefo_service
from pharmasync.time_utils import utcnow
from pharmasync.validation import AllocationError, ValidationError


def _batch(batch_id, quantity, expiration, received=None):
    return SimpleNamespace(
        id=batch_id,
        lot_number=f"LOT-{batch_id}",
        quantity=quantity,
        expiration_date=expiration,
        received_date=received,
    )


class TestPlanFromBatches:
    """Pure planning over in-memory batches."""

    def test_spills_from_soonest_lot_into_next(self):
        early = _batch("b-early", 5, datetime(2026, 11, 1))
        late = _batch("b-late", 10, datetime(2027, 3, 1))

        plan = fefo_service.plan_from_batches("prod-1", [late, early], 8)

        assert [(a.batch_id, a.quantity) for a in plan.allocations] == [("b-early", 5), ("b-late", 3)]
        assert plan.total == 8

    def test_single_lot_covers_request(self):
        early = _batch("b-early", 5, datetime(2026, 11, 1))
        late = _batch("b-late", 10, datetime(2027, 3, 1))

        plan = fefo_service.plan_from_batches("prod-1", [early, late], 4)

        assert [(a.batch_id, a.quantity) for a in plan.allocations] == [("b-early", 4)]

    def test_empty_lots_are_skipped(self):
        empty = _batch("b-empty", 0, datetime(2026, 10, 20))
        late = _batch("b-late", 10, datetime(2027, 3, 1))

        plan = fefo_service.plan_from_batches("prod-1", [empty, late], 2)

        assert [a.batch_id for a in plan.allocations] == ["b-late"]

    def test_same_expiry_prefers_older_receipt(self):
        expiry = datetime(2027, 1, 1)
        newer = _batch("b-newer", 10, expiry, received=datetime(2026, 9, 1))
        older = _batch("b-older", 10, expiry, received=datetime(2026, 6, 1))

        plan = fefo_service.plan_from_batches("prod-1", [newer, older], 3)

        assert plan.allocations[0].batch_id == "b-older"

    def test_shortfall_raises(self):
        batches = [_batch("b1", 5, datetime(2026, 11, 1)), _batch("b2", 10, datetime(2027, 3, 1))]

        with pytest.raises(AllocationError) as exc_info:
            fefo_service.plan_from_batches("prod-1", batches, 20)

        assert exc_info.value.available == 15
        assert exc_info.value.requested == 20

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity_rejected(self, quantity):
        with pytest.raises(ValidationError):
            fefo_service.plan_from_batches("prod-1", [], quantity)


class TestStoredAllocation:
    """Planning and applying against stored batches."""

    def test_plan_and_apply(self, db_session, make_product, make_batch, fresh):
        make_product("prod-1", stock=15)
        make_batch("prod-1", "b-early", quantity=5, expires_in_days=10)
        make_batch("prod-1", "b-late", quantity=10, expires_in_days=200)

        plan = fefo_service.plan_fefo_allocation("prod-1", 8)
        fefo_service.apply_allocation(plan)
        db_session.commit()

        assert fresh(ProductBatch, "b-early").quantity == 0
        assert fresh(ProductBatch, "b-late").quantity == 7
        assert fefo_service.get_total_batch_stock("prod-1") == 7

    def test_shortfall_leaves_batches_untouched(self, db_session, make_product, make_batch, fresh):
        make_product("prod-1", stock=15)
        make_batch("prod-1", "b-early", quantity=5, expires_in_days=10)
        make_batch("prod-1", "b-late", quantity=10, expires_in_days=200)

        with pytest.raises(AllocationError):
            fefo_service.plan_fefo_allocation("prod-1", 20)

        assert fresh(ProductBatch, "b-early").quantity == 5
        assert fresh(ProductBatch, "b-late").quantity == 10

    def test_stale_plan_fails_on_apply(self, db_session, make_product, make_batch, fresh):
        make_product("prod-1", stock=5)
        make_batch("prod-1", "b1", quantity=5)
        plan = fefo_service.plan_fefo_allocation("prod-1", 4)

        # Someone else drew from the lot after the plan was made
        batch = db_session.get(ProductBatch, "b1")
        batch.quantity = 2
        db_session.commit()

        with pytest.raises(AllocationError):
            fefo_service.apply_allocation(plan)
        db_session.rollback()

        assert fresh(ProductBatch, "b1").quantity == 2

    def test_targeted_allocation_checks_lot(self, db_session, make_product, make_batch):
        make_product("prod-1", stock=15)
        make_product("prod-2")
        make_batch("prod-1", "b1", quantity=5)

        plan = fefo_service.plan_targeted_allocation("prod-1", "b1", 5)
        assert plan.total == 5

        with pytest.raises(AllocationError):
            fefo_service.plan_targeted_allocation("prod-1", "b1", 6)
        with pytest.raises(ValidationError):
            fefo_service.plan_targeted_allocation("prod-2", "b1", 1)


class TestExpiry:
    """Alert levels and the expiring window."""

    @pytest.mark.parametrize(
        "days,level",
        [
            (-1, fefo_service.ALERT_EXPIRED),
            (5, fefo_service.ALERT_CRITICAL),
            (45, fefo_service.ALERT_WARNING),
            (120, fefo_service.ALERT_OK),
        ],
    )
    def test_alert_level(self, days, level):
        now = utcnow()
        assert fefo_service.expiration_alert_level(now + timedelta(days=days), now=now) == level

    def test_expiring_window(self, db_session, make_product, make_batch):
        make_product("prod-1", stock=20)
        make_batch("prod-1", "b-soon", quantity=5, expires_in_days=10)
        make_batch("prod-1", "b-later", quantity=5, expires_in_days=100)
        make_batch("prod-1", "b-empty", quantity=0, expires_in_days=5)

        batches = fefo_service.get_expiring_batches(30)

        assert [b.id for b in batches] == ["b-soon"]
