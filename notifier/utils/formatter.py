from datetime import datetime
from enum import Enum

from notifier.models import Order, format_money

TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"


class AlertKind(Enum):
    COMMERCE = "woocommerce"
    LEDGER = "database"
    MESSAGING = "whatsapp"
    GENERIC = "generic"


def _timestamp(now: datetime | None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def format_order_message(order: Order) -> str:
    return (
        f"🆕 NOVO PEDIDO PAGO! | 👤 Cliente: {order.customer.name}"
        f" | 🧾 Subtotal: {format_money(order.subtotal)}"
        f" | 🚚 Frete: {format_money(order.shipping_total)}"
        f" | 💰 Total: {format_money(order.total)}"
        f" | 🚚 Entrega: {order.shipping_method}"
        f" | 💳 Pagamento: {order.payment_method}"
        " | ✅ Pedido confirmado e pronto para processamento\n\n"
        f"📦 Produtos:\n{order.formatted_items()}\n\n"
        f"📍 Endereço de Entrega:\n{order.formatted_address()}"
    )


def format_retry_message(order: Order, attempt: int, now: datetime | None = None) -> str:
    return (
        "🔄 TENTATIVA DE REENVIO\n\n"
        f"📦 Pedido: #{order.number}\n"
        f"👤 Cliente: {order.customer.name}\n"
        f"🔄 Tentativa: {attempt}\n"
        f"⏰ Horário: {_timestamp(now)}\n\n"
        f"{format_order_message(order)}"
    )


def _alert_headline(kind: AlertKind) -> str:
    match kind:
        case AlertKind.COMMERCE:
            return "A API do WooCommerce está indisponível. Verifique a loja o quanto antes."
        case AlertKind.LEDGER:
            return "O banco de dados está offline. Os pedidos não serão verificados até a conexão voltar."
        case AlertKind.MESSAGING:
            return "A API do WhatsApp está com problemas. As notificações ficarão na fila de pendentes."
        case AlertKind.GENERIC:
            return ""
    raise ValueError(f"Unknown alert kind: {kind!r}")


def format_alert(kind: AlertKind, details: str, now: datetime | None = None) -> str:
    headline = _alert_headline(kind)
    if not headline:
        return f"⚠️ ALERTA DO SISTEMA ⚠️\n\n{details}\n\n📅 Data/Hora: {_timestamp(now)}"
    return (
        "⚠️ ALERTA DO SISTEMA ⚠️\n\n"
        f"{headline}\n\n"
        f"📅 Data/Hora: {_timestamp(now)}\n"
        f"🔍 Detalhes: {details}"
    )


def format_test_message(now: datetime | None = None) -> str:
    return (
        "🧪 TESTE DO SISTEMA\n\n"
        "✅ WhatsApp API está funcionando!\n"
        f"📅 Data/Hora: {_timestamp(now)}\n"
        "🚀 Sistema de mensagens automáticas ativo!"
    )


def format_system_status(health: dict, pending: int, last_check: datetime | None, now: datetime | None = None) -> str:
    def mark(name: str) -> str:
        return "✅ Online" if health.get(name) else "❌ Offline"

    checked = last_check.strftime(TIMESTAMP_FORMAT) if last_check else "Nunca"
    return (
        "📊 STATUS DO SISTEMA\n\n"
        f"🛒 WooCommerce: {mark(AlertKind.COMMERCE.value)}\n"
        f"🗄️ Banco de dados: {mark(AlertKind.LEDGER.value)}\n"
        f"💬 WhatsApp: {mark(AlertKind.MESSAGING.value)}\n"
        f"📬 Pedidos pendentes: {pending}\n"
        f"🕐 Última verificação: {checked}\n"
        f"📅 Data/Hora: {_timestamp(now)}"
    )
