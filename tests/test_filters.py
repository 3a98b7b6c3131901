import pytest

from pharmacy_orders.orders.filters import filter_orders, matches_search, summarize
from pharmacy_orders.orders.model import DeliveryStatus, MedicineItem, OrderStatus


@pytest.fixture
def orders(make_order):
    return [
        make_order("p1", "pending", patient_name="Meena Iyer", patient_phone="9000011111"),
        make_order("p2", "payment_pending", payment_confirmed=True, medicines=[MedicineItem("Insulin Glargine")]),
        make_order("a1", "preparing", delivery_status=DeliveryStatus.PREPARING, pharmacy_accepted=True,
                   prescription={"doctorName": "Dr. Sen", "diagnosis": "Type 2 Diabetes"}),
        make_order("d1", "completed", delivery_status=DeliveryStatus.DELIVERED, pharmacy_accepted=True),
        make_order("r1", "rejected", pharmacy_rejected=True),
    ]


@pytest.mark.parametrize(
    "tab, expected",
    [
        (None, ["p1", "p2", "a1", "d1", "r1"]),
        ("all", ["p1", "p2", "a1", "d1", "r1"]),
        ("pending", ["p1", "p2"]),
        ("accepted", ["a1"]),
        ("completed", ["d1"]),
        ("rejected", ["r1"]),
    ],
)
def test_filter_tabs(orders, tab, expected):
    assert [o.id for o in filter_orders(orders, tab)] == expected


def test_search_covers_patient_prescription_and_medicines(orders):
    assert [o.id for o in filter_orders(orders, search="meena")] == ["p1"]
    assert [o.id for o in filter_orders(orders, search="90000")] == ["p1"]
    assert [o.id for o in filter_orders(orders, search="dr. sen")] == ["a1"]
    assert [o.id for o in filter_orders(orders, search="DIABETES")] == ["a1"]
    assert [o.id for o in filter_orders(orders, "pending", search="insulin")] == ["p2"]
    assert filter_orders(orders, "completed", search="insulin") == []


def test_blank_search_matches_everything(make_order):
    assert matches_search(make_order(), "   ")


def test_unknown_tab(orders):
    with pytest.raises(ValueError):
        filter_orders(orders, "archived")


def test_summarize(orders):
    assert summarize(orders) == {"all": 5, "pending": 2, "accepted": 1, "completed": 1, "rejected": 1}


def test_delivered_status_counts_as_completed(make_order):
    order = make_order("x", OrderStatus.DELIVERED, delivery_status=DeliveryStatus.DELIVERED, pharmacy_accepted=True)
    assert summarize([order])["completed"] == 1
    assert summarize([order])["accepted"] == 0
