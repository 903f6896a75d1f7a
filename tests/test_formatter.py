from datetime import datetime

import pytest

from notifier.utils.formatter import (
    AlertKind,
    format_alert,
    format_order_message,
    format_retry_message,
    format_system_status,
    format_test_message,
)

from conftest import make_order

NOW = datetime(2024, 5, 1, 9, 30, 5)


def test_order_message_carries_totals_items_and_address() -> None:
    text = format_order_message(make_order("101"))

    assert text.startswith("🆕 NOVO PEDIDO PAGO!")
    assert "👤 Cliente: Ana Souza" in text
    assert "🧾 Subtotal: R$ 100.00" in text
    assert "🚚 Frete: R$ 15.50" in text
    assert "💰 Total: R$ 115.50" in text
    assert "💳 Pagamento: Pix" in text
    assert "• Camiseta - Qtd: 2 - R$ 100.00" in text
    assert "Rua das Flores, 10, São Paulo, SP, 01000-000, BR" in text


def test_retry_message_has_attempt_and_original_message() -> None:
    order = make_order("102")
    text = format_retry_message(order, 3, now=NOW)

    assert text.startswith("🔄 TENTATIVA DE REENVIO")
    assert "📦 Pedido: #102" in text
    assert "🔄 Tentativa: 3" in text
    assert "⏰ Horário: 01/05/2024 09:30:05" in text
    assert text.endswith(format_order_message(order))


@pytest.mark.parametrize(
    "kind, fragment",
    [
        (AlertKind.COMMERCE, "WooCommerce"),
        (AlertKind.LEDGER, "banco de dados"),
        (AlertKind.MESSAGING, "WhatsApp"),
    ],
)
def test_alert_headline_per_kind(kind: AlertKind, fragment: str) -> None:
    text = format_alert(kind, "detalhes do erro", now=NOW)

    assert text.startswith("⚠️ ALERTA DO SISTEMA ⚠️")
    assert fragment in text
    assert "🔍 Detalhes: detalhes do erro" in text
    assert "01/05/2024 09:30:05" in text


def test_generic_alert_is_details_only() -> None:
    text = format_alert(AlertKind.GENERIC, "Falha inesperada", now=NOW)

    assert "Falha inesperada" in text
    assert "🔍 Detalhes" not in text


def test_system_status_marks_each_dependency() -> None:
    text = format_system_status(
        {"woocommerce": True, "database": False, "whatsapp": True}, pending=2, last_check=None, now=NOW
    )

    assert "🛒 WooCommerce: ✅ Online" in text
    assert "🗄️ Banco de dados: ❌ Offline" in text
    assert "📬 Pedidos pendentes: 2" in text
    assert "Última verificação: Nunca" in text


def test_test_message_has_timestamp() -> None:
    assert "01/05/2024 09:30:05" in format_test_message(now=NOW)
