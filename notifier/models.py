import logging
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from notifier.exceptions import MalformedUpstreamData

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

ELIGIBLE_STATUSES = frozenset({"processing", "processando"})

NOT_INFORMED = "Não informado"
CUSTOMER_NAME_PLACEHOLDER = "Cliente não informado"
CUSTOMER_EMAIL_PLACEHOLDER = "Email não informado"
CUSTOMER_PHONE_PLACEHOLDER = "Telefone não informado"
ADDRESS_PLACEHOLDER = "Endereço não informado"
CITY_PLACEHOLDER = "Cidade não informada"
STATE_PLACEHOLDER = "Estado não informado"
POSTCODE_PLACEHOLDER = "CEP não informado"
COUNTRY_PLACEHOLDER = "País não informado"
ITEMS_PLACEHOLDER = "Produtos não informados"

ADDRESS_PLACEHOLDERS = frozenset(
    {ADDRESS_PLACEHOLDER, CITY_PLACEHOLDER, STATE_PLACEHOLDER, POSTCODE_PLACEHOLDER, COUNTRY_PLACEHOLDER}
)


def parse_money(value: Any) -> Decimal:
    """Parses an upstream amount; anything unusable becomes 0.00."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    if not amount.is_finite() or amount < 0:
        return ZERO
    try:
        return amount.quantize(CENT)
    except InvalidOperation:
        return ZERO


def parse_optional_money(value: Any) -> Decimal | None:
    if value is None:
        return None
    return parse_money(value)


def parse_count(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        count = int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        return 0
    return max(count, 0)


def parse_text(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    return default


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def _list_or_empty(value: Any) -> Any:
    return [] if value is None else value


def format_money(amount: Decimal) -> str:
    return f"R$ {amount.quantize(CENT)}"


Money = Annotated[Decimal, BeforeValidator(parse_money)]
OptionalMoney = Annotated[Decimal | None, BeforeValidator(parse_optional_money)]
Count = Annotated[int, BeforeValidator(parse_count)]
Text = Annotated[str, BeforeValidator(parse_text)]
Timestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]


# --- WooCommerce payload schema ---

class WooBilling(BaseModel):
    model_config = ConfigDict(extra="ignore")

    first_name: Text = ""
    last_name: Text = ""
    email: Text = ""
    phone: Text = ""


class WooShipping(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address_1: Text = ""
    address_2: Text = ""
    city: Text = ""
    state: Text = ""
    postcode: Text = ""
    country: Text = ""


class WooLineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Text = ""
    quantity: Count = 0
    price: Money = ZERO
    total: Money = ZERO


class WooShippingLine(BaseModel):
    model_config = ConfigDict(extra="ignore")

    method_title: Text = ""


class WooOrderPayload(BaseModel):
    """The subset of a WooCommerce REST order that the notifier reads."""

    model_config = ConfigDict(extra="ignore")

    id: Count = 0
    number: Text = ""
    status: Text = ""
    subtotal: OptionalMoney = None
    shipping_total: Money = ZERO
    total: Money = ZERO
    payment_method_title: Text = ""
    shipping_lines: Annotated[list[WooShippingLine], BeforeValidator(_list_or_empty)] = []
    billing: WooBilling | None = None
    shipping: WooShipping | None = None
    line_items: Annotated[list[WooLineItem], BeforeValidator(_list_or_empty)] = []
    date_created: Timestamp = None


def decode_payload(raw: Any) -> WooOrderPayload:
    """Validates a raw upstream order, raising MalformedUpstreamData on mismatch."""
    if not isinstance(raw, Mapping):
        raise MalformedUpstreamData(f"Order payload is not an object: {type(raw).__name__}")
    try:
        return WooOrderPayload.model_validate(dict(raw))
    except ValidationError as exc:
        raise MalformedUpstreamData(
            f"Order payload {raw.get('id')} does not match the expected schema",
            errors=exc.errors(),
            payload_id=raw.get("id"),
        ) from exc


# --- Canonical entities ---

class Customer(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = CUSTOMER_NAME_PLACEHOLDER
    email: str = CUSTOMER_EMAIL_PLACEHOLDER
    phone: str = CUSTOMER_PHONE_PLACEHOLDER


class LineItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    quantity: int = Field(default=0, ge=0)
    price: Decimal = ZERO
    total: Decimal = ZERO


class ShippingAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    address_1: str = ADDRESS_PLACEHOLDER
    address_2: str = ""
    city: str = CITY_PLACEHOLDER
    state: str = STATE_PLACEHOLDER
    postcode: str = POSTCODE_PLACEHOLDER
    country: str = COUNTRY_PLACEHOLDER


class Order(BaseModel):
    """A commerce order as seen by one reconciliation pass."""

    model_config = ConfigDict(frozen=True)

    id: int = 0
    number: str
    status: str = ""
    subtotal: Decimal = ZERO
    shipping_total: Decimal = ZERO
    total: Decimal = ZERO
    payment_method: str = NOT_INFORMED
    shipping_method: str = NOT_INFORMED
    customer: Customer = Customer()
    items: tuple[LineItem, ...] = ()
    address: ShippingAddress = ShippingAddress()
    created_at: datetime | None = None

    @classmethod
    def from_upstream(cls, raw: Any) -> "Order":
        """Builds an order from a raw payload. Never fails."""
        try:
            payload = decode_payload(raw)
        except MalformedUpstreamData as exc:
            logger.warning(f"{exc}; falling back to a minimal order ({len(exc.errors)} schema errors)")
            return cls._minimal(raw)
        return cls._from_payload(payload)

    @classmethod
    def from_snapshot(cls, snapshot: Mapping[str, Any]) -> "Order":
        return cls.model_validate(dict(snapshot))

    @classmethod
    def _from_payload(cls, payload: WooOrderPayload) -> "Order":
        items = tuple(
            LineItem(name=item.name, quantity=item.quantity, price=item.price, total=item.total)
            for item in payload.line_items
        )
        subtotal = payload.subtotal
        if subtotal is None:
            subtotal = sum((item.total for item in items), ZERO)

        customer = Customer()
        if payload.billing is not None:
            billing = payload.billing
            customer = Customer(
                name=f"{billing.first_name} {billing.last_name}".strip() or CUSTOMER_NAME_PLACEHOLDER,
                email=billing.email or CUSTOMER_EMAIL_PLACEHOLDER,
                phone=billing.phone or CUSTOMER_PHONE_PLACEHOLDER,
            )

        address = ShippingAddress()
        if payload.shipping is not None:
            address = ShippingAddress(**payload.shipping.model_dump())

        shipping_method = NOT_INFORMED
        if payload.shipping_lines and payload.shipping_lines[0].method_title:
            shipping_method = payload.shipping_lines[0].method_title

        return cls(
            id=payload.id,
            number=payload.number or str(payload.id),
            status=payload.status,
            subtotal=subtotal,
            shipping_total=payload.shipping_total,
            total=payload.total,
            payment_method=payload.payment_method_title or NOT_INFORMED,
            shipping_method=shipping_method,
            customer=customer,
            items=items,
            address=address,
            created_at=payload.date_created,
        )

    @classmethod
    def _minimal(cls, raw: Any) -> "Order":
        if not isinstance(raw, Mapping):
            raw = {}
        order_id = parse_count(raw.get("id"))
        return cls(
            id=order_id,
            number=parse_text(raw.get("number")) or str(order_id),
            status=parse_text(raw.get("status")),
        )

    def is_identified(self) -> bool:
        """False for payloads that carried neither a number nor a usable id."""
        return self.number not in ("", "0")

    def is_eligible(self) -> bool:
        return self.status.lower() in ELIGIBLE_STATUSES

    def formatted_address(self) -> str:
        parts = [
            self.address.address_1,
            self.address.address_2,
            self.address.city,
            self.address.state,
            self.address.postcode,
            self.address.country,
        ]
        joined = ", ".join(part for part in parts if part and part not in ADDRESS_PLACEHOLDERS)
        return joined or ADDRESS_PLACEHOLDER

    def formatted_items(self) -> str:
        if not self.items:
            return ITEMS_PLACEHOLDER
        return "\n".join(
            f"• {item.name} - Qtd: {item.quantity} - {format_money(item.total)}" for item in self.items
        )

    def snapshot(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# --- Ledger records ---

class PendingDelivery(BaseModel):
    order_number: str
    snapshot: dict[str, Any]
    attempts: int = 0
    created_at: datetime | None = None
    last_attempt_at: datetime | None = None

    def order(self) -> Order:
        return Order.from_snapshot(self.snapshot)


class SystemLogEntry(BaseModel):
    category: str
    message: str
    logged_at: datetime | None = None


class LedgerStats(BaseModel):
    processed: int = 0
    pending: int = 0
    online: bool = False
