"""Shared enumerations and choices used across apps."""

from django.db import models


class TransactionType(models.TextChoices):
    AUTHORIZE = "authorize", "Authorize"
    PURCHASE = "purchase", "Purchase"
    CAPTURE = "capture", "Capture"
    REFUND = "refund", "Refund"
    COMPLETE_AUTHORIZE = "complete-authorize", "Complete authorize"
    COMPLETE_PURCHASE = "complete-purchase", "Complete purchase"


class TransactionStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    REDIRECT = "redirect", "Redirect"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"


class PaymentType(models.TextChoices):
    AUTHORIZE = "authorize", "Authorize only (manually capture)"
    PURCHASE = "purchase", "Purchase (authorize and capture immediately)"


class GatewayAction(models.TextChoices):
    """Every request an adapter can be asked to build."""

    AUTHORIZE = "authorize", "Authorize"
    PURCHASE = "purchase", "Purchase"
    CAPTURE = "capture", "Capture"
    REFUND = "refund", "Refund"
    COMPLETE_AUTHORIZE = "complete-authorize", "Complete authorize"
    COMPLETE_PURCHASE = "complete-purchase", "Complete purchase"
    ACCEPT_NOTIFICATION = "accept-notification", "Accept notification"


class NotificationStatus(models.TextChoices):
    COMPLETED = "completed", "Completed"
    PENDING = "pending", "Pending"
    FAILED = "failed", "Failed"


class RedirectMethod(models.TextChoices):
    GET = "GET", "GET"
    POST = "POST", "POST"


class Currency(models.TextChoices):
    NGN = "NGN", "Nigerian Naira"
    USD = "USD", "US Dollar"
    EUR = "EUR", "Euro"
    GBP = "GBP", "British Pound"
    GHS = "GHS", "Ghanaian Cedi"
    ZAR = "ZAR", "South African Rand"
    KES = "KES", "Kenyan Shilling"
