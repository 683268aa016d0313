"""
Payment methods and a simulated processor. Payments always succeed.
"""
import logging
import time
from typing import Optional, List, Literal

from fastapi import HTTPException
from pydantic import BaseModel

from database import now_utc

log = logging.getLogger("animalmart.payments")


class PaymentMethod(BaseModel):
    id: str
    name: str
    type: Literal["e_wallet", "bank_transfer", "cash"]
    icon: str
    description: str
    is_active: bool = True


PAYMENT_METHODS: List[PaymentMethod] = [
    PaymentMethod(id="dana", name="DANA", type="e_wallet", icon="dana-icon.png", description="Pay with DANA e-wallet"),
    PaymentMethod(id="gopay", name="GoPay", type="e_wallet", icon="gopay-icon.png", description="Pay with GoPay"),
    PaymentMethod(id="bca", name="BCA Virtual Account", type="bank_transfer", icon="bca-icon.png", description="Transfer to a BCA virtual account"),
    PaymentMethod(id="bni", name="BNI Virtual Account", type="bank_transfer", icon="bni-icon.png", description="Transfer to a BNI virtual account"),
    PaymentMethod(id="mandiri", name="Mandiri Virtual Account", type="bank_transfer", icon="mandiri-icon.png", description="Transfer to a Mandiri virtual account"),
    PaymentMethod(id="ovo", name="OVO", type="e_wallet", icon="ovo-icon.png", description="Pay with OVO"),
    PaymentMethod(id="shopeepay", name="ShopeePay", type="e_wallet", icon="shopeepay-icon.png", description="Pay with ShopeePay"),
    PaymentMethod(id="cod", name="Cash on Delivery (COD)", type="cash", icon="cod-icon.png", description="Pay when the parcel arrives"),
]


def get_available_methods() -> List[dict]:
    return [m.model_dump() for m in PAYMENT_METHODS if m.is_active]


def get_methods_by_type(method_type: str) -> List[dict]:
    return [m.model_dump() for m in PAYMENT_METHODS if m.type == method_type and m.is_active]


def get_method(method_id: str) -> Optional[PaymentMethod]:
    return next((m for m in PAYMENT_METHODS if m.id == method_id), None)


def process_payment(order_id: str, payment_method_id: str, amount: float) -> dict:
    method = get_method(payment_method_id)
    if method is None or not method.is_active:
        raise HTTPException(status_code=400, detail="Invalid payment method")
    log.info("Simulated payment of %.2f for order %s via %s", amount, order_id, method.name)
    return {
        "order_id": order_id,
        "payment_method": method.name,
        "amount": amount,
        "status": "success",
        "transaction_id": f"TXN-{int(time.time() * 1000)}",
        "paid_at": now_utc(),
        "message": f"Payment successful via {method.name}",
    }
