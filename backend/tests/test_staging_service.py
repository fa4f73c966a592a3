"""
Staged and bulk edit tests.

Verifies:
1. One failing order never blocks the others
2. The manifest has one entry per order, in submission order
3. Failed entries stay staged; applied entries are cleared
"""

import pytest

from preorders.errors import PartialApplyError, ValidationError
from preorders.extensions import db
from preorders.models import PreOrder
from preorders.services import order_service, staging_service
from preorders.services.staging_service import Applied, ChangeStager, Failed


@pytest.fixture
def three_orders(customer):
    return [
        order_service.create_order(
            {"customer_id": customer.id},
            [{"product_name": f"Item {n}", "price_cents": 1000}],
        ).order.id
        for n in range(3)
    ]


class TestChangeStager:

    def test_stage_does_not_write(self, three_orders):
        stager = ChangeStager()
        stager.stage(three_orders[0], "status", "shipped")

        assert stager.has_pending()
        assert stager.pending() == {three_orders[0]: {"status": "shipped"}}
        assert db.session.get(PreOrder, three_orders[0]).status == "pending"

    def test_later_stage_replaces_earlier(self, three_orders):
        stager = ChangeStager()
        stager.stage(three_orders[0], "status", "ordered")
        stager.stage(three_orders[0], "status", "shipped")

        assert stager.pending()[three_orders[0]] == {"status": "shipped"}

    def test_only_lifecycle_fields_can_be_staged(self):
        with pytest.raises(ValidationError):
            ChangeStager().stage(1, "delivery_charges_cents", 0)

    def test_discard_all(self, three_orders):
        stager = ChangeStager()
        stager.stage(three_orders[0], "status", "shipped")
        stager.discard_all()

        assert not stager.has_pending()
        assert stager.apply_all().entries == []

    def test_one_failure_does_not_block_others(self, three_orders, flight):
        a, b, c = three_orders
        stager = ChangeStager()
        stager.stage(a, "flight_id", flight.id)
        stager.stage(b, "flight_id", 999)
        stager.stage(c, "flight_id", flight.id)

        manifest = stager.apply_all()

        assert len(manifest) == 3
        assert [e.order_id for e in manifest] == [a, b, c]
        assert [type(e) for e in manifest] == [Applied, Failed, Applied]
        assert manifest.failures[0].error_type == "NotFoundError"
        assert not manifest.ok

        assert db.session.get(PreOrder, a).flight_id == flight.id
        assert db.session.get(PreOrder, b).flight_id is None
        assert db.session.get(PreOrder, c).flight_id == flight.id

    def test_failed_entries_stay_pending(self, three_orders):
        a, b, _ = three_orders
        stager = ChangeStager()
        stager.stage(a, "status", "shipped")
        stager.stage(b, "status", "lost")

        stager.apply_all()

        assert stager.pending() == {b: {"status": "lost"}}

    def test_unknown_order_is_a_failure(self, db_session):
        stager = ChangeStager()
        stager.stage(4242, "status", "shipped")

        manifest = stager.apply_all()

        assert len(manifest.failures) == 1
        assert manifest.failures[0].error_type == "NotFoundError"

    def test_raise_for_failures(self, three_orders):
        stager = ChangeStager()
        stager.stage(three_orders[0], "status", "lost")

        manifest = stager.apply_all()

        with pytest.raises(PartialApplyError) as exc:
            manifest.raise_for_failures()
        assert exc.value.context["failed_order_ids"] == [three_orders[0]]

    def test_from_changes(self, three_orders, flight):
        stager = ChangeStager.from_changes([
            {"order_id": three_orders[0], "status": "delivered", "flight_id": flight.id},
            {"order_id": str(three_orders[1]), "status": "ordered"},
        ])

        manifest = stager.apply_all()

        assert manifest.ok
        order = db.session.get(PreOrder, three_orders[0])
        assert (order.status, order.flight_id) == ("delivered", flight.id)

    @pytest.mark.parametrize("changes", [None, [{"status": "shipped"}], [{"order_id": 1}]])
    def test_from_changes_rejects_malformed(self, changes):
        with pytest.raises(ValidationError):
            ChangeStager.from_changes(changes)


class TestApplyToSet:

    def test_bulk_status(self, three_orders):
        manifest = staging_service.apply_to_set(three_orders, "status", "ordered")

        assert manifest.ok
        assert manifest.to_dict()["applied"] == 3
        assert {db.session.get(PreOrder, oid).status for oid in three_orders} == {"ordered"}

    def test_bulk_keeps_money(self, three_orders):
        before = [db.session.get(PreOrder, oid).total_amount_cents for oid in three_orders]

        staging_service.apply_to_set(three_orders, "status", "cancelled")

        assert [db.session.get(PreOrder, oid).total_amount_cents for oid in three_orders] == before

    def test_bulk_with_missing_order(self, three_orders, flight):
        manifest = staging_service.apply_to_set([three_orders[0], 999], "flight_id", flight.id)

        body = manifest.to_dict()
        assert body["applied"] == 1
        assert body["failed"] == 1
        assert body["entries"][1]["order_id"] == 999

    def test_bulk_requires_ids(self):
        with pytest.raises(ValidationError):
            staging_service.apply_to_set([], "status", "ordered")

    def test_malformed_id_rejects_batch_before_any_write(self, three_orders):
        first, _, last = three_orders

        with pytest.raises(ValidationError) as exc:
            staging_service.apply_to_set([first, "abc", last], "status", "shipped")

        assert exc.value.context["invalid_order_ids"] == ["abc"]
        db.session.expire_all()
        assert db.session.get(PreOrder, first).status == "pending"
        assert db.session.get(PreOrder, last).status == "pending"

    def test_digit_string_ids_are_accepted(self, three_orders):
        manifest = staging_service.apply_to_set([str(oid) for oid in three_orders], "status", "ordered")

        assert [entry.order_id for entry in manifest] == three_orders
        assert manifest.ok
