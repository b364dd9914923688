"""
Order-to-cash flow against a real (SQLite) database through the
WorkflowOrchestrator: requisition → delivery challan → payment → approval.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from brickflow.models.audit_log import AuditLog
from brickflow.models.delivery_challan import DeliveryChallan
from brickflow.models.payment import Payment
from brickflow.models.requisition import Requisition
from brickflow.schemas.delivery_challan import ChallanCreate, ChallanUpdate
from brickflow.schemas.payment import PaymentCreate, PaymentUpdate
from brickflow.schemas.requisition import RequisitionCreate, RequisitionUpdate


async def _load(session_factory, model, entity_id):
    async with session_factory() as session:
        return (await session.execute(select(model).where(model.id == uuid.UUID(entity_id)))).scalar_one()


# ---------------------------------------------------------------------------
# Requisitions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_requisition_assigns_first_order_number(place_requisition):
    data = await place_requisition()

    assert data["order_number"] == "ORD000001"
    assert data["status"] == "submitted"
    assert data["total_amount"] == "2550.00"
    assert data["quantity"] == "100.00"
    assert data["price_per_unit"] == "25.50"
    assert data["date"] == date.today().isoformat()


@pytest.mark.asyncio
async def test_order_numbers_are_sequential(place_requisition):
    numbers = [(await place_requisition())["order_number"] for _ in range(3)]
    assert numbers == ["ORD000001", "ORD000002", "ORD000003"]


@pytest.mark.asyncio
async def test_calculation_mismatch_is_rejected(orchestrator, sales_actor, make_requisition_body, session_factory):
    result = await orchestrator.create_requisition(
        sales_actor, make_requisition_body(total_amount=Decimal("2000.00"))
    )

    assert result.status == "fail"
    assert result.http_status == 422
    assert "total_amount" in result.errors
    assert result.errors["expected_total"] == "2550.00"

    async with session_factory() as session:
        assert (await session.execute(select(Requisition))).first() is None


@pytest.mark.asyncio
async def test_total_within_tolerance_is_stored_as_recomputed(place_requisition):
    data = await place_requisition(total_amount=Decimal("2550.005"))
    assert data["total_amount"] == "2550.00"


@pytest.mark.asyncio
async def test_stale_quoted_price_is_rejected(orchestrator, sales_actor, make_requisition_body):
    result = await orchestrator.create_requisition(
        sales_actor, make_requisition_body(price_per_unit=Decimal("24.00"))
    )

    assert result.status == "fail"
    assert result.errors["current_price"] == "25.50"
    assert result.errors["submitted_price"] == "24.00"


@pytest.mark.asyncio
async def test_blank_customer_fields_are_rejected(orchestrator, sales_actor, make_requisition_body):
    result = await orchestrator.create_requisition(
        sales_actor, make_requisition_body(customer_name="  ", customer_location="")
    )

    assert result.status == "fail"
    assert set(result.errors) >= {"customer_name", "customer_location"}


@pytest.mark.asyncio
async def test_non_positive_quantity_is_rejected(orchestrator, sales_actor, make_requisition_body):
    result = await orchestrator.create_requisition(
        sales_actor,
        make_requisition_body(quantity=Decimal("0"), total_amount=Decimal("0")),
    )

    assert result.status == "fail"
    assert "quantity" in result.errors
    assert "total_amount" in result.errors


@pytest.mark.asyncio
async def test_inactive_brick_type_is_not_found(orchestrator, sales_actor, inactive_brick_type):
    result = await orchestrator.create_requisition(
        sales_actor,
        RequisitionCreate(
            brick_type_id=inactive_brick_type.id,
            quantity=Decimal("100"),
            entered_price=Decimal("9.00"),
            total_amount=Decimal("900.00"),
            customer_name="Ravi Constructions",
            customer_phone="9800000001",
            customer_address="12 Kiln Road",
            customer_location="Bhaktapur",
        ),
    )

    assert result.status == "fail"
    assert result.http_status == 404
    assert "brick_type" in result.errors


@pytest.mark.asyncio
async def test_only_sales_executive_creates_requisitions(orchestrator, logistics_actor, make_requisition_body):
    result = await orchestrator.create_requisition(logistics_actor, make_requisition_body())

    assert result.status == "fail"
    assert result.http_status == 403
    assert result.errors["user_role"] == "Logistics"


@pytest.mark.asyncio
async def test_submitted_requisition_can_be_edited_and_total_recalculated(
    orchestrator, sales_actor, place_requisition
):
    req = await place_requisition()

    result = await orchestrator.update_requisition(
        sales_actor, uuid.UUID(req["id"]), RequisitionUpdate(quantity=Decimal("200"))
    )

    assert result.ok, result.errors
    assert result.data["quantity"] == "200.00"
    assert result.data["total_amount"] == "5100.00"


@pytest.mark.asyncio
async def test_requisition_update_with_wrong_total_is_rejected(
    orchestrator, sales_actor, place_requisition
):
    req = await place_requisition()

    result = await orchestrator.update_requisition(
        sales_actor,
        uuid.UUID(req["id"]),
        RequisitionUpdate(quantity=Decimal("200"), total_amount=Decimal("2550.00")),
    )

    assert result.status == "fail"
    assert result.errors["expected_total"] == "5100.00"


@pytest.mark.asyncio
async def test_assigned_requisition_is_immutable(
    orchestrator, sales_actor, place_requisition, issue_challan
):
    req = await place_requisition()
    await issue_challan(req["id"])

    result = await orchestrator.update_requisition(
        sales_actor, uuid.UUID(req["id"]), RequisitionUpdate(customer_name="Someone Else")
    )

    assert result.status == "fail"
    assert result.http_status == 403
    assert "requisition_status" in result.errors


@pytest.mark.asyncio
async def test_requisitions_are_never_deleted(orchestrator, sales_actor, place_requisition, session_factory):
    req = await place_requisition()

    result = await orchestrator.delete_requisition(sales_actor, uuid.UUID(req["id"]))

    assert result.http_status == 403
    assert (await _load(session_factory, Requisition, req["id"])).order_number == req["order_number"]


# ---------------------------------------------------------------------------
# Delivery challans
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_challan_creation_assigns_requisition(
    orchestrator, logistics_actor, place_requisition, issue_challan, session_factory
):
    req = await place_requisition()
    challan = await issue_challan(req["id"])

    assert challan["challan_number"] == "CH-000001"
    assert challan["delivery_status"] == "pending"
    assert challan["order_number"] == req["order_number"]
    assert challan["print_count"] == 0
    assert (await _load(session_factory, Requisition, req["id"])).status == "assigned"

    second = await orchestrator.create_challan_from_requisition(
        logistics_actor,
        ChallanCreate(
            requisition_id=req["id"],
            vehicle_number="BA 1 PA 9",
            driver_name="Hari",
            location="Site",
        ),
    )
    assert second.status == "fail"
    assert "requisition" in second.errors


@pytest.mark.asyncio
async def test_challan_for_unknown_requisition_is_not_found(orchestrator, logistics_actor):
    result = await orchestrator.create_challan_from_requisition(
        logistics_actor,
        ChallanCreate(
            requisition_id=uuid.uuid4(), vehicle_number="X", driver_name="Y", location="Z"
        ),
    )
    assert result.http_status == 404


@pytest.mark.asyncio
async def test_delivery_walkthrough_advances_requisition(
    orchestrator, logistics_actor, place_requisition, issue_challan, session_factory
):
    req = await place_requisition()
    challan = await issue_challan(req["id"])
    challan_id = uuid.UUID(challan["id"])

    for target in ("assigned", "in_transit", "delivered"):
        result = await orchestrator.update_delivery_status(logistics_actor, challan_id, target)
        assert result.ok, result.errors

    assert result.data["delivery_date"] == date.today().isoformat()
    assert (await _load(session_factory, Requisition, req["id"])).status == "delivered"


@pytest.mark.asyncio
async def test_illegal_delivery_edge_is_rejected(
    orchestrator, logistics_actor, place_requisition, issue_challan
):
    req = await place_requisition()
    challan = await issue_challan(req["id"])

    result = await orchestrator.update_delivery_status(
        logistics_actor, uuid.UUID(challan["id"]), "in_transit"
    )

    assert result.status == "fail"
    assert result.errors["current_status"] == "pending"
    assert result.errors["requested_status"] == "in_transit"


@pytest.mark.asyncio
async def test_failed_delivery_can_be_retried(
    orchestrator, logistics_actor, place_requisition, issue_challan
):
    req = await place_requisition()
    challan_id = uuid.UUID((await issue_challan(req["id"]))["id"])

    assert (await orchestrator.update_delivery_status(logistics_actor, challan_id, "failed")).ok
    retried = await orchestrator.update_delivery_status(logistics_actor, challan_id, "assigned")
    assert retried.ok
    assert retried.data["delivery_status"] == "assigned"


@pytest.mark.asyncio
async def test_unknown_delivery_status_is_a_validation_failure(
    orchestrator, logistics_actor, place_requisition, issue_challan
):
    req = await place_requisition()
    challan_id = uuid.UUID((await issue_challan(req["id"]))["id"])

    result = await orchestrator.update_delivery_status(logistics_actor, challan_id, "lost")
    assert result.status == "fail"
    assert "delivery_status" in result.errors


@pytest.mark.asyncio
async def test_delivered_challan_rejects_field_edits(
    orchestrator, logistics_actor, place_requisition, issue_challan
):
    req = await place_requisition()
    challan_id = uuid.UUID((await issue_challan(req["id"]))["id"])

    edited = await orchestrator.update_challan(
        logistics_actor, challan_id, ChallanUpdate(driver_name="Ram Bahadur")
    )
    assert edited.ok
    assert edited.data["driver_name"] == "Ram Bahadur"

    for target in ("assigned", "in_transit", "delivered"):
        await orchestrator.update_delivery_status(logistics_actor, challan_id, target)

    rejected = await orchestrator.update_challan(
        logistics_actor, challan_id, ChallanUpdate(vehicle_number="BA 9 KHA 1")
    )
    assert rejected.status == "fail"
    assert rejected.http_status == 403


@pytest.mark.asyncio
async def test_printing_counts_and_returns_document(
    orchestrator, logistics_actor, place_requisition, issue_challan
):
    req = await place_requisition()
    challan_id = uuid.UUID((await issue_challan(req["id"]))["id"])

    first = await orchestrator.print_challan(logistics_actor, challan_id)
    second = await orchestrator.print_challan(logistics_actor, challan_id)

    assert first.ok and second.ok
    assert first.data["print_info"]["print_count"] == 1
    assert second.data["print_info"]["print_count"] == 2
    assert second.data["order_details"]["brick_type"] == "Red Clay Brick"
    assert second.data["order_details"]["total_amount"] == "2550.00"
    assert second.data["customer_details"]["name"] == "Ravi Constructions"
    assert second.data["sales_executive"]["name"] == "Sales Executive User"


@pytest.mark.asyncio
async def test_challans_are_never_deleted(orchestrator, logistics_actor, place_requisition, issue_challan):
    req = await place_requisition()
    challan_id = uuid.UUID((await issue_challan(req["id"]))["id"])

    result = await orchestrator.delete_challan(logistics_actor, challan_id)
    assert result.http_status == 403


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_payment_creation_delivers_challan(
    place_requisition, issue_challan, book_payment, session_factory
):
    req = await place_requisition()
    challan = await issue_challan(req["id"])

    payment = await book_payment(challan["id"], amount_received=Decimal("1000.00"))

    assert payment["payment_status"] == "partial"
    assert payment["total_amount"] == "2550.00"
    assert payment["remaining_amount"] == "1550.00"

    stored = await _load(session_factory, DeliveryChallan, challan["id"])
    assert stored.delivery_status == "delivered"
    assert stored.delivery_date == date.today()
    assert (await _load(session_factory, Requisition, req["id"])).status == "delivered"


@pytest.mark.asyncio
async def test_payment_defaults_to_pending_with_nothing_received(
    place_requisition, issue_challan, book_payment
):
    req = await place_requisition()
    payment = await book_payment((await issue_challan(req["id"]))["id"])

    assert payment["payment_status"] == "pending"
    assert payment["amount_received"] == "0.00"


@pytest.mark.asyncio
async def test_overpayment_is_rejected_before_persistence(
    orchestrator, accounts_actor, place_requisition, issue_challan, session_factory
):
    req = await place_requisition()
    challan = await issue_challan(req["id"])

    result = await orchestrator.create_payment(
        accounts_actor,
        PaymentCreate(
            delivery_challan_id=challan["id"],
            total_amount=Decimal("1000"),
            amount_received=Decimal("1500"),
        ),
    )

    assert result.status == "fail"
    assert result.errors["order_total"] == "1000.00"
    assert result.errors["attempted_payment"] == "1500.00"
    async with session_factory() as session:
        assert (await session.execute(select(Payment))).first() is None
    assert (await _load(session_factory, DeliveryChallan, challan["id"])).delivery_status == "pending"


@pytest.mark.asyncio
async def test_negative_amount_is_rejected(orchestrator, accounts_actor, place_requisition, issue_challan):
    req = await place_requisition()
    challan = await issue_challan(req["id"])

    result = await orchestrator.create_payment(
        accounts_actor,
        PaymentCreate(delivery_challan_id=challan["id"], amount_received=Decimal("-1")),
    )
    assert result.status == "fail"
    assert "amount_received" in result.errors


@pytest.mark.asyncio
async def test_second_payment_for_challan_is_rejected(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment
):
    req = await place_requisition()
    challan = await issue_challan(req["id"])
    await book_payment(challan["id"])

    result = await orchestrator.create_payment(
        accounts_actor, PaymentCreate(delivery_challan_id=challan["id"])
    )
    assert result.status == "fail"
    assert "delivery_challan_id" in result.errors


@pytest.mark.asyncio
async def test_payment_requires_pending_challan(
    orchestrator, accounts_actor, logistics_actor, place_requisition, issue_challan
):
    req = await place_requisition()
    challan = await issue_challan(req["id"])
    await orchestrator.update_delivery_status(logistics_actor, uuid.UUID(challan["id"]), "assigned")

    result = await orchestrator.create_payment(
        accounts_actor, PaymentCreate(delivery_challan_id=challan["id"])
    )
    assert result.status == "fail"
    assert result.message == "Can only create payment for pending challans"


@pytest.mark.asyncio
async def test_amount_update_rederives_status(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment, session_factory
):
    req = await place_requisition(
        quantity=Decimal("40"), entered_price=Decimal("25.00"), total_amount=Decimal("1000.00")
    )
    payment = await book_payment((await issue_challan(req["id"]))["id"])
    payment_id = uuid.UUID(payment["id"])

    partial = await orchestrator.update_payment(
        accounts_actor, payment_id, PaymentUpdate(amount_received=Decimal("400"))
    )
    assert partial.data["payment_status"] == "partial"

    # lowering a partial amount is fine; derived changes skip the caller table
    lowered = await orchestrator.update_payment(
        accounts_actor, payment_id, PaymentUpdate(amount_received=Decimal("300"))
    )
    assert lowered.data["payment_status"] == "partial"

    paid = await orchestrator.update_payment(
        accounts_actor, payment_id, PaymentUpdate(amount_received=Decimal("1000"))
    )
    assert paid.data["payment_status"] == "paid"
    assert paid.data["remaining_amount"] == "0.00"
    assert (await _load(session_factory, Requisition, req["id"])).status == "paid"


@pytest.mark.asyncio
async def test_update_overpayment_reports_already_received(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment
):
    req = await place_requisition()
    payment = await book_payment(
        (await issue_challan(req["id"]))["id"], amount_received=Decimal("550")
    )

    result = await orchestrator.update_payment(
        accounts_actor, uuid.UUID(payment["id"]), PaymentUpdate(amount_received=Decimal("3000"))
    )

    assert result.status == "fail"
    assert result.errors["already_received"] == "550.00"
    assert result.errors["remaining_amount"] == "2000.00"


@pytest.mark.asyncio
async def test_explicit_status_follows_transition_table(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment
):
    req = await place_requisition()
    payment = await book_payment((await issue_challan(req["id"]))["id"])
    payment_id = uuid.UUID(payment["id"])

    overdue = await orchestrator.update_payment(
        accounts_actor, payment_id, PaymentUpdate(payment_status="overdue")
    )
    assert overdue.data["payment_status"] == "overdue"

    illegal = await orchestrator.update_payment(
        accounts_actor, payment_id, PaymentUpdate(payment_status="approved")
    )
    assert illegal.status == "fail"
    assert illegal.errors["current_status"] == "overdue"
    assert illegal.errors["requested_status"] == "approved"


@pytest.mark.asyncio
async def test_conflicting_status_and_amount_is_rejected(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment
):
    req = await place_requisition()
    payment = await book_payment((await issue_challan(req["id"]))["id"])

    result = await orchestrator.update_payment(
        accounts_actor,
        uuid.UUID(payment["id"]),
        PaymentUpdate(amount_received=Decimal("100"), payment_status="paid"),
    )
    assert result.status == "fail"
    assert result.errors["requested_status"] == "paid"


@pytest.mark.asyncio
async def test_approval_locks_payment_and_completes_order(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment, session_factory
):
    req = await place_requisition(
        quantity=Decimal("40"), entered_price=Decimal("25.00"), total_amount=Decimal("1000.00")
    )
    payment = await book_payment(
        (await issue_challan(req["id"]))["id"], amount_received=Decimal("1000")
    )
    assert payment["payment_status"] == "paid"
    payment_id = uuid.UUID(payment["id"])

    approved = await orchestrator.approve_payment(accounts_actor, payment_id)

    assert approved.ok, approved.errors
    assert approved.data["payment_status"] == "approved"
    assert approved.data["approved_by"] == str(accounts_actor.user_id)
    assert approved.data["approved_at"] is not None
    assert (await _load(session_factory, Requisition, req["id"])).status == "complete"

    for payload in (
        PaymentUpdate(remarks="late note"),
        PaymentUpdate(amount_received=Decimal("999")),
        PaymentUpdate(payment_status="paid"),
        PaymentUpdate(),
    ):
        result = await orchestrator.update_payment(accounts_actor, payment_id, payload)
        assert result.status == "fail"
        assert result.http_status == 403

    again = await orchestrator.approve_payment(accounts_actor, payment_id)
    assert again.status == "fail"
    assert "already approved" in again.message

    deleted = await orchestrator.delete_payment(accounts_actor, payment_id)
    assert deleted.http_status == 403


@pytest.mark.asyncio
async def test_partial_payment_cannot_be_approved(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment
):
    req = await place_requisition()
    payment = await book_payment(
        (await issue_challan(req["id"]))["id"], amount_received=Decimal("100")
    )

    result = await orchestrator.approve_payment(accounts_actor, uuid.UUID(payment["id"]))
    assert result.status == "fail"
    assert "amount_received" in result.errors


@pytest.mark.asyncio
async def test_approval_through_update_records_approver(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment
):
    req = await place_requisition()
    payment = await book_payment(
        (await issue_challan(req["id"]))["id"], amount_received=Decimal("2550")
    )

    result = await orchestrator.update_payment(
        accounts_actor, uuid.UUID(payment["id"]), PaymentUpdate(payment_status="approved")
    )
    assert result.ok, result.errors
    assert result.data["approved_by"] == str(accounts_actor.user_id)


@pytest.mark.asyncio
async def test_unapproved_payment_can_be_deleted(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment, session_factory
):
    req = await place_requisition()
    payment = await book_payment((await issue_challan(req["id"]))["id"])

    result = await orchestrator.delete_payment(accounts_actor, uuid.UUID(payment["id"]))

    assert result.ok
    async with session_factory() as session:
        assert (await session.execute(select(Payment))).first() is None


@pytest.mark.asyncio
async def test_mutations_are_audited(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment, session_factory
):
    req = await place_requisition()
    payment = await book_payment(
        (await issue_challan(req["id"]))["id"], amount_received=Decimal("2550")
    )
    await orchestrator.approve_payment(accounts_actor, uuid.UUID(payment["id"]))

    async with session_factory() as session:
        actions = (await session.execute(select(AuditLog.action))).scalars().all()

    assert set(actions) >= {
        "REQUISITION_CREATED",
        "CHALLAN_CREATED",
        "PAYMENT_CREATED",
        "PAYMENT_APPROVED",
    }


@pytest.mark.asyncio
async def test_paid_payment_cannot_be_lowered_by_amount(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment, session_factory
):
    req = await place_requisition()
    payment = await book_payment(
        (await issue_challan(req["id"]))["id"], amount_received=Decimal("2550.00")
    )
    payment_id = uuid.UUID(payment["id"])

    for amount in (Decimal("0"), Decimal("1000")):
        result = await orchestrator.update_payment(
            accounts_actor, payment_id, PaymentUpdate(amount_received=amount)
        )
        assert result.status == "fail"
        assert result.errors["current_status"] == "paid"

    stored = await _load(session_factory, Payment, payment["id"])
    assert stored.payment_status == "paid"
    assert stored.amount_received == Decimal("2550.00")
    assert (await _load(session_factory, Requisition, req["id"])).status == "paid"


@pytest.mark.asyncio
async def test_partial_payment_cannot_drop_back_to_pending(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment
):
    req = await place_requisition()
    payment = await book_payment(
        (await issue_challan(req["id"]))["id"], amount_received=Decimal("500")
    )

    result = await orchestrator.update_payment(
        accounts_actor, uuid.UUID(payment["id"]), PaymentUpdate(amount_received=Decimal("0"))
    )
    assert result.status == "fail"
    assert result.errors["requested_status"] == "pending"


@pytest.mark.asyncio
async def test_paid_status_without_money_leaves_requisition_delivered(
    orchestrator, accounts_actor, place_requisition, issue_challan, book_payment, session_factory
):
    req = await place_requisition()
    payment = await book_payment((await issue_challan(req["id"]))["id"])

    result = await orchestrator.update_payment(
        accounts_actor, uuid.UUID(payment["id"]), PaymentUpdate(payment_status="paid")
    )

    assert result.ok, result.errors
    assert (await _load(session_factory, Requisition, req["id"])).status == "delivered"


@pytest.mark.asyncio
async def test_total_only_update_stores_recomputed_total(
    orchestrator, sales_actor, place_requisition, session_factory
):
    req = await place_requisition()

    result = await orchestrator.update_requisition(
        sales_actor, uuid.UUID(req["id"]), RequisitionUpdate(total_amount=Decimal("2550.01"))
    )

    assert result.ok, result.errors
    assert result.data["total_amount"] == "2550.00"
    assert (await _load(session_factory, Requisition, req["id"])).total_amount == Decimal("2550.00")
