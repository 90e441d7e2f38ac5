# module storefront.orders.models
"""Modèles de la feature 'orders'.
- Schémas d'entrée (pydantic) pour la création de commande, la confirmation client et la mise à jour admin.
- Énumérations fermées: moyens de paiement et statuts.
- to_public_order: conversion d'une ligne DB (snake_case) vers la représentation API (camelCase).
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    CASH_ON_DELIVERY = "cash_on_delivery"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    # Atteint uniquement via mark_paid (webhook ou confirmation client)
    CONFIRMED = "confirmed"


# Statuts qu'un admin peut positionner
ADMIN_STATUSES = {
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
}


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class OrderItemRequest(_ApiModel):
    product: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class ShippingAddress(_ApiModel):
    street: str
    city: str
    state: str
    zip_code: str = Field(alias="zipCode")
    country: str = "US"

    @field_validator("street", "city", "state", "zip_code", "country")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Champ obligatoire")
        return v

    def as_record(self) -> Dict[str, str]:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zipCode": self.zip_code,
            "country": self.country,
        }


class CreateOrderRequest(_ApiModel):
    order_items: List[OrderItemRequest] = Field(alias="orderItems", min_length=1)
    shipping_address: ShippingAddress = Field(alias="shippingAddress")
    payment_method: PaymentMethod = Field(alias="paymentMethod")


class ConfirmPaymentRequest(_ApiModel):
    payment_intent_id: str = Field(alias="paymentIntentId", min_length=1)


class UpdateStatusRequest(_ApiModel):
    status: OrderStatus
    tracking_number: Optional[str] = Field(default=None, alias="trackingNumber")
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _admin_status_only(cls, v: OrderStatus) -> OrderStatus:
        if v not in ADMIN_STATUSES:
            raise ValueError("Statut invalide")
        return v


class PaymentIntentRequest(_ApiModel):
    order_id: str = Field(alias="orderId", min_length=1)


def to_public_order(row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Représentation API d'une commande (camelCase) à partir de la ligne 'orders'.
    - Les montants numeric reviennent de PostgREST en nombre: ils sont renvoyés tels quels.
    """
    row = row or {}
    return {
        "id": row.get("id"),
        "orderNumber": row.get("order_number"),
        "user": row.get("user_id"),
        "orderItems": row.get("order_items") or [],
        "shippingAddress": row.get("shipping_address") or {},
        "paymentMethod": row.get("payment_method"),
        "itemsPrice": row.get("items_price"),
        "taxPrice": row.get("tax_price"),
        "shippingPrice": row.get("shipping_price"),
        "totalPrice": row.get("total_price"),
        "isPaid": bool(row.get("is_paid")),
        "paidAt": row.get("paid_at"),
        "paymentResult": row.get("payment_result"),
        "status": row.get("status"),
        "isDelivered": bool(row.get("is_delivered")),
        "deliveredAt": row.get("delivered_at"),
        "trackingNumber": row.get("tracking_number"),
        "notes": row.get("notes"),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }
