"""
Calcul des prix d'une commande (pur: pas de DB, pas de Stripe).
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple, Union

from storefront.config import TAX_RATE, FREE_SHIPPING_THRESHOLD, SHIPPING_FLAT_FEE

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]

# module storefront.orders.pricing
def to_money(value: Number) -> Decimal:
    """
    Convertit une valeur (Decimal|int|float|str) en montant arrondi au centime.
    - Les floats passent par str() pour éviter les artefacts binaires (0.1 + 0.2).
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)

def to_minor_units(amount: Number) -> int:
    """Montant en centimes pour Stripe (ex: 58.60 -> 5860)."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))

@dataclass(frozen=True)
class PricingPolicy:
    tax_rate: Decimal = TAX_RATE
    free_shipping_threshold: Decimal = FREE_SHIPPING_THRESHOLD
    shipping_flat_fee: Decimal = SHIPPING_FLAT_FEE

@dataclass(frozen=True)
class PriceBreakdown:
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    total_price: Decimal

    def as_record(self) -> dict:
        """Colonnes monétaires de la table orders (numeric sérialisé en str)."""
        return {
            "items_price": str(self.items_price),
            "tax_price": str(self.tax_price),
            "shipping_price": str(self.shipping_price),
            "total_price": str(self.total_price),
        }

DEFAULT_POLICY = PricingPolicy()

def compute_prices(lines: Iterable[Tuple[Number, int]], policy: PricingPolicy = DEFAULT_POLICY) -> PriceBreakdown:
    """
    Calcule items/taxe/livraison/total à partir de paires (prix unitaire, quantité).
    - items = Σ prix × quantité
    - taxe = items × taux (8% par défaut)
    - livraison = 0 si items > seuil (50), sinon forfait (10)
    - total = items + taxe + livraison, calculé sur les montants arrondis
    Soulève ValueError si la liste est vide ou contient une quantité <= 0:
    une commande vide doit être refusée en amont, jamais valorisée à zéro.
    """
    lines = list(lines)
    if not lines:
        raise ValueError("Aucune ligne à valoriser")

    items = Decimal("0")
    for unit_price, quantity in lines:
        if int(quantity) <= 0:
            raise ValueError(f"Quantité invalide: {quantity}")
        items += to_money(unit_price) * int(quantity)

    items_price = to_money(items)
    tax_price = to_money(items_price * policy.tax_rate)
    shipping_price = Decimal("0.00") if items_price > policy.free_shipping_threshold else to_money(policy.shipping_flat_fee)
    total_price = items_price + tax_price + shipping_price
    return PriceBreakdown(items_price, tax_price, shipping_price, total_price)
