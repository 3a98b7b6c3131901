from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidOrderRecord


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAYMENT_PENDING = "payment_pending"
    CONFIRMED = "confirmed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"


class DeliveryStatus(str, Enum):
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"


class Stage(str, Enum):
    PENDING = "Pending"
    PAYMENT = "Payment"
    CONFIRMED = "Confirmed"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    PREPARING = "Preparing"
    OUT_FOR_DELIVERY = "OutForDelivery"
    DELIVERED = "Delivered"


class Action(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    CONFIRM = "confirm"
    OUT_FOR_DELIVERY = "outForDelivery"
    MARK_DELIVERED = "markDelivered"
    LEGACY_COMPLETE = "legacyComplete"


TERMINAL_STATUSES = frozenset({
    OrderStatus.REJECTED,
    OrderStatus.COMPLETED,
    OrderStatus.DELIVERED,
})


@dataclass
class MedicineItem:
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[float] = None

    @classmethod
    def from_record(cls, raw: Any) -> "MedicineItem":
        # Older records list medicines as bare names.
        if isinstance(raw, str):
            return cls(name=raw)
        if not isinstance(raw, dict):
            raise InvalidOrderRecord(f"Unsupported medicine entry: {raw!r}")
        return cls(
            name=str(raw.get("name") or ""),
            dosage=raw.get("dosage"),
            frequency=raw.get("frequency"),
            duration=raw.get("duration"),
            quantity=raw.get("quantity"),
            price=raw.get("price"),
        )

    def to_record(self) -> Dict[str, Any]:
        data = {"name": self.name}
        for key in ("dosage", "frequency", "duration", "quantity", "price"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


# attribute name -> wire key
_WIRE_KEYS = {
    "status": "status",
    "delivery_status": "deliveryStatus",
    "payment_confirmed": "paymentConfirmed",
    "pharmacy_accepted": "pharmacyAccepted",
    "pharmacy_rejected": "pharmacyRejected",
    "pharmacy_confirmed": "pharmacyConfirmed",
    "created_at": "createdAt",
    "accepted_at": "acceptedAt",
    "rejected_at": "rejectedAt",
    "preparing_at": "preparingAt",
    "out_for_delivery_at": "outForDeliveryAt",
    "delivered_at": "deliveredAt",
    "patient_name": "patientName",
    "patient_phone": "patientPhone",
    "total_amount": "totalAmount",
    "prescription": "prescription",
}
_ID_KEYS = ("id", "_id", "requestId")
_KNOWN_KEYS = set(_WIRE_KEYS.values()) | set(_ID_KEYS) | {"medicines"}


@dataclass
class Order:
    """One patient medicine request, as seen by the fulfilling pharmacy."""

    id: str
    status: OrderStatus
    delivery_status: Optional[DeliveryStatus] = None
    payment_confirmed: bool = False
    pharmacy_accepted: bool = False
    pharmacy_rejected: bool = False
    pharmacy_confirmed: bool = False
    medicines: List[MedicineItem] = field(default_factory=list)

    created_at: Optional[str] = None
    accepted_at: Optional[str] = None
    rejected_at: Optional[str] = None
    preparing_at: Optional[str] = None
    out_for_delivery_at: Optional[str] = None
    delivered_at: Optional[str] = None

    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    total_amount: Optional[float] = None
    prescription: Dict[str, Any] = field(default_factory=dict)

    # Record keys this service does not interpret, re-emitted untouched.
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Order":
        if not isinstance(record, dict):
            raise InvalidOrderRecord(f"Order record must be an object, got {type(record).__name__}")

        order_id = next((record[k] for k in _ID_KEYS if record.get(k) not in (None, "")), None)
        if order_id is None:
            raise InvalidOrderRecord("Order record has no id")

        raw_status = record.get("status")
        try:
            status = OrderStatus(raw_status)
        except ValueError:
            raise InvalidOrderRecord(f"Order {order_id} has unknown status {raw_status!r}") from None

        raw_delivery = record.get("deliveryStatus")
        delivery_status = None
        if raw_delivery:
            try:
                delivery_status = DeliveryStatus(raw_delivery)
            except ValueError:
                raise InvalidOrderRecord(
                    f"Order {order_id} has unknown deliveryStatus {raw_delivery!r}"
                ) from None

        order = cls(
            id=str(order_id),
            status=status,
            delivery_status=delivery_status,
            payment_confirmed=bool(record.get("paymentConfirmed")),
            pharmacy_accepted=bool(record.get("pharmacyAccepted")),
            pharmacy_rejected=bool(record.get("pharmacyRejected")),
            pharmacy_confirmed=bool(record.get("pharmacyConfirmed")),
            medicines=[MedicineItem.from_record(m) for m in record.get("medicines") or []],
            created_at=record.get("createdAt"),
            accepted_at=record.get("acceptedAt"),
            rejected_at=record.get("rejectedAt"),
            preparing_at=record.get("preparingAt"),
            out_for_delivery_at=record.get("outForDeliveryAt"),
            delivered_at=record.get("deliveredAt"),
            patient_name=record.get("patientName"),
            patient_phone=record.get("patientPhone"),
            total_amount=record.get("totalAmount"),
            prescription=record.get("prescription") or {},
            extra={k: v for k, v in record.items() if k not in _KNOWN_KEYS},
        )
        check_invariants(order)
        return order

    def to_record(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data["id"] = self.id
        for attr, key in _WIRE_KEYS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            if isinstance(value, Enum):
                value = value.value
            data[key] = value
        data["medicines"] = [m.to_record() for m in self.medicines]
        return data

    @property
    def is_terminal(self) -> bool:
        return (
            self.status in TERMINAL_STATUSES
            or self.delivery_status == DeliveryStatus.DELIVERED
            or self.pharmacy_rejected
        )


def check_invariants(order: Order) -> None:
    if order.pharmacy_accepted and order.pharmacy_rejected:
        raise InvalidOrderRecord(f"Order {order.id} is both accepted and rejected by the pharmacy")
    if order.delivery_status is not None:
        if order.status in (OrderStatus.PENDING, OrderStatus.REJECTED) or order.pharmacy_rejected:
            raise InvalidOrderRecord(
                f"Order {order.id} has deliveryStatus {order.delivery_status.value!r} "
                f"but has not been accepted (status {order.status.value!r})"
            )
