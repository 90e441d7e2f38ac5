"""
Notification post-paiement (email de confirmation avec le détail de facture).
Best-effort: appelé après une transition de paiement réussie, ses erreurs sont journalisées
par l'appelant et n'annulent jamais l'état payé.
"""
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from storefront.notifications.invoice import build_invoice

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)

# module storefront.notifications.service
def render_confirmation(invoice: Dict[str, Any]) -> str:
    return _env.get_template("order_confirmation.html").render(invoice=invoice)

def render_confirmation_text(invoice: Dict[str, Any]) -> str:
    lines = [f"{invoice['store']} - Order #{invoice['order_number']}", ""]
    for line in invoice["lines"]:
        lines.append(f"- {line['name']} x{line['quantity']}: {line['line_total']}")
    lines.append("")
    lines.append(f"Total: {invoice['total_price']}")
    return "\n".join(lines)


class NotificationDispatcher:
    def __init__(self, mailer):
        self.mailer = mailer

    def order_paid(self, order: Dict[str, Any], customer: Optional[Dict[str, Any]] = None) -> bool:
        """
        Envoie la confirmation de commande au client.
        - Retourne False (sans envoi) si aucune adresse email n'est connue.
        - Les erreurs du mailer remontent à l'appelant.
        """
        invoice = build_invoice(order, customer)
        to = invoice["customer"]["email"]
        if not to:
            logger.warning("notifications.order_paid no recipient order_id=%s", order.get("id"))
            return False
        subject = f"Your {invoice['store']} Order Confirmation (#{invoice['order_number']})"
        self.mailer.send(to, subject, render_confirmation(invoice), render_confirmation_text(invoice))
        return True


def notify_order_paid(dispatcher: Optional[NotificationDispatcher], order: Dict[str, Any], customer: Optional[Dict[str, Any]] = None) -> None:
    """
    Déclenche la notification sans jamais lever: un échec d'email ne doit ni annuler le paiement
    ni faire échouer l'accusé de réception du webhook.
    """
    if dispatcher is None:
        return
    try:
        dispatcher.order_paid(order, customer)
    except Exception:
        logger.exception("notifications.order_paid failed order_id=%s", (order or {}).get("id"))
