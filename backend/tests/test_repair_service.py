# Overview: Pytest coverage for repair tickets, line items, urgency and ticket number allocation.

from decimal import Decimal
from types import SimpleNamespace

import pytest

from repairdesk.models import Customer, Device, RepairTicket
from repairdesk.services import repair_service
from repairdesk.services.concurrency import NumberCollisionError
from repairdesk.services.repair_service import RepairError
from repairdesk.services.tenant_service import TenantAccessError
from repairdesk.validation import ValidationError


class TestUrgency:
    @pytest.mark.parametrize(
        "priority,status,expected",
        [
            (1, "intake", True),
            (2, "on_hold", True),
            (2, "completed", False),
            (1, "cancelled", False),
            (3, "in_repair", False),
            (None, "intake", False),
        ],
    )
    def test_is_urgent(self, priority, status, expected):
        ticket = SimpleNamespace(priority_level=priority, status=status)
        assert repair_service.is_urgent(ticket) is expected

    def test_terminal_statuses(self):
        assert repair_service.is_terminal("completed")
        assert repair_service.is_terminal("cancelled")
        assert not repair_service.is_terminal("on_hold")
        assert not repair_service.is_active(None)


class TestTickets:
    def test_create_assigns_ticket_number(self, db_session, org_a, customer_a, device_a):
        ticket = repair_service.create_repair(org_id=org_a.id, patch={
            "customer_id": customer_a.id,
            "device_id": device_a.id,
            "issue": "No power",
            "priority_level": 1,
        })
        assert ticket.ticket_number.startswith("RT-")
        assert ticket.status == "intake"
        assert repair_service.is_urgent(ticket)

    def test_device_must_belong_to_customer(self, db_session, org_a, customer_a):
        stranger = Device(org_id=org_a.id, customer_id=customer_a.id, device_type="phone", brand="X", model="Y")
        db_session.add(stranger)
        db_session.commit()

        someone_else = Customer(org_id=org_a.id, first_name="Bob", last_name="Smith")
        db_session.add(someone_else)
        db_session.commit()

        with pytest.raises(RepairError) as exc:
            repair_service.create_repair(org_id=org_a.id, patch={
                "customer_id": someone_else.id,
                "device_id": stranger.id,
                "issue": "Wrong device",
            })
        assert exc.value.details["device_id"] == stranger.id

    def test_foreign_customer_rejected(self, db_session, org_a, customer_b):
        with pytest.raises(TenantAccessError):
            repair_service.create_repair(org_id=org_a.id, patch={"customer_id": customer_b.id, "issue": "x"})

    def test_unknown_status_rejected(self, db_session, org_a, repair_a):
        with pytest.raises(ValidationError):
            repair_service.update_status(org_id=org_a.id, repair_id=repair_a.id, status="lost")

    def test_any_known_status_may_be_written(self, db_session, org_a, repair_a):
        ticket = repair_service.update_status(org_id=org_a.id, repair_id=repair_a.id, status="completed")
        assert ticket.actual_completion_date is not None

        ticket = repair_service.update_status(org_id=org_a.id, repair_id=repair_a.id, status="in_repair")
        assert ticket.status == "in_repair"

    def test_list_filters(self, db_session, org_a, repair_a, repair_b):
        repair_service.update_repair(org_id=org_a.id, repair_id=repair_a.id, patch={"priority_level": 2})

        assert [t.id for t in repair_service.list_repairs(org_id=org_a.id)] == [repair_a.id]
        assert [t.id for t in repair_service.list_repairs(org_id=org_a.id, urgent=True)] == [repair_a.id]
        assert repair_service.list_repairs(org_id=org_a.id, status="completed") == []

    def test_soft_delete_hides_ticket_and_items(self, db_session, org_a, repair_a):
        repair_service.delete_repair(org_id=org_a.id, repair_id=repair_a.id)

        with pytest.raises(TenantAccessError):
            repair_service.get_repair(org_id=org_a.id, repair_id=repair_a.id)
        assert all(item.is_deleted for item in db_session.get(RepairTicket, repair_a.id).items)


class TestTicketNumbers:
    def test_collision_is_retried_with_new_number(self, db_session, org_a, customer_a, repair_a, monkeypatch):
        taken = repair_a.ticket_number
        numbers = iter([taken, "RT-TEST-A2"])
        monkeypatch.setattr(repair_service, "generate_ticket_number", lambda: next(numbers))

        ticket = repair_service.create_repair(org_id=org_a.id, patch={"customer_id": customer_a.id, "issue": "Fan noise"})

        assert ticket.ticket_number == "RT-TEST-A2"
        assert db_session.query(RepairTicket).count() == 2

    def test_exhausted_retries_raise(self, db_session, org_a, customer_a, repair_a, monkeypatch):
        taken = repair_a.ticket_number
        monkeypatch.setattr(repair_service, "generate_ticket_number", lambda: taken)

        with pytest.raises(NumberCollisionError):
            repair_service.create_repair(org_id=org_a.id, patch={"customer_id": customer_a.id, "issue": "Fan noise"})
        assert db_session.query(RepairTicket).count() == 1


class TestLineItems:
    def test_add_item_defaults_from_inventory(self, db_session, org_a, repair_a):
        from repairdesk.services import inventory_service

        part = inventory_service.create_inventory_item(org_id=org_a.id, patch={
            "name": "Battery pack",
            "category": "batteries",
            "price": Decimal("40.00"),
            "quantity": 3,
        })
        item = repair_service.add_item(org_id=org_a.id, repair_id=repair_a.id, patch={"inventory_item_id": part.id})

        assert item.description == "Battery pack"
        assert Decimal(item.unit_price) == Decimal("40.00")
        assert item.item_type == "part"
        assert item.quantity == 1

    def test_add_item_requires_price_without_inventory(self, db_session, org_a, repair_a):
        with pytest.raises(ValidationError):
            repair_service.add_item(org_id=org_a.id, repair_id=repair_a.id, patch={
                "description": "Labor", "item_type": "service",
            })

    @pytest.mark.parametrize(
        "patch",
        [
            {"description": "x", "unit_price": Decimal("1"), "item_type": "part", "quantity": 0},
            {"description": "x", "unit_price": Decimal("-1"), "item_type": "part"},
            {"description": "x", "unit_price": Decimal("1"), "item_type": "gift"},
        ],
    )
    def test_item_rules(self, db_session, org_a, repair_a, patch):
        with pytest.raises(ValidationError):
            repair_service.add_item(org_id=org_a.id, repair_id=repair_a.id, patch=patch)

    def test_live_subtotal_excludes_deleted_items(self, db_session, org_a, repair_a):
        assert repair_service.live_subtotal(repair_a) == Decimal("25.50")

        labor = [i for i in repair_a.live_items if i.item_type == "service"][0]
        repair_service.delete_item(org_id=org_a.id, repair_id=repair_a.id, item_id=labor.id)

        ticket = repair_service.get_repair(org_id=org_a.id, repair_id=repair_a.id)
        assert repair_service.live_subtotal(ticket) == Decimal("15.50")

    def test_item_of_other_ticket_not_found(self, db_session, org_a, repair_a, customer_a):
        other = repair_service.create_repair(org_id=org_a.id, patch={"customer_id": customer_a.id, "issue": "x"})
        item = repair_a.live_items[0]
        with pytest.raises(TenantAccessError):
            repair_service.update_item(org_id=org_a.id, repair_id=other.id, item_id=item.id, patch={"quantity": 2})
