"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import PaymentModel

__all__ = [
    "Base",
    "metadata",
    "PaymentModel",
]
