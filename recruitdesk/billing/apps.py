from django.apps import AppConfig


class BillingConfig(AppConfig):
    """
    Django app configuration for the billing app.

    Holds the entitlement engine: plans, subscriptions, the lifecycle state
    machine, usage metering and billing event reconciliation.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "recruitdesk.billing"
