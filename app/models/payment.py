"""
Payment, wallet and ledger models
"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from app.models.booking import PaymentMethod


class PaymentType(str, Enum):
    DEPOSIT = "deposit"
    REMAINING = "remaining"
    FULL_PAYMENT = "full_payment"
    WALLET_DEPOSIT = "wallet_deposit"
    REFUND = "refund"


class PaymentRecordStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class LedgerEntryType(str, Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    TOPUP = "topup"
    REVERSAL = "reversal"


class PaymentCreate(BaseModel):
    booking_id: str = Field(..., description="Booking storage id or BK- reference")
    payment_type: PaymentType
    payment_method: PaymentMethod = PaymentMethod.GATEWAY
    redirect_url: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "booking_id": "BK-1a2b3c4d",
                "payment_type": "deposit",
                "payment_method": "wallet",
            }
        }


class WalletDepositRequest(BaseModel):
    amount: float = Field(..., gt=0)
    redirect_url: Optional[str] = None


class PaymentOutcome(BaseModel):
    """Outcome reported by the payment gateway for one transaction"""
    transaction_id: str = Field(..., alias="transactionId")
    booking_id: Optional[str] = Field(None, alias="bookingId")
    success: bool
    payment_type: Optional[PaymentType] = Field(None, alias="paymentType")
    gateway_reference: Optional[str] = Field(None, alias="gatewayReference")
    message: Optional[str] = None

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "transactionId": "TP-9f8e7d6c",
                "bookingId": "BK-1a2b3c4d",
                "success": True,
                "paymentType": "deposit",
            }
        }
