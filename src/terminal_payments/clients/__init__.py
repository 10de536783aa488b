"""HTTP clients for the payment backend."""

from terminal_payments.clients.payment_api_client import PaymentApiClient

__all__ = ["PaymentApiClient"]
