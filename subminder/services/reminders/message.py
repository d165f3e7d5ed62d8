from subminder.schemas.reminder_schemas import DueSubscription

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "MKD": "ден",
}


def resolve_currency_symbol(
    subscription: DueSubscription,
    default_symbol: str = "$",
    use_subscription_currency: bool = False,
) -> str:
    """
    Symbol shown in front of the cost.

    The fixed ``default_symbol`` is used unless ``use_subscription_currency``
    is set, in which case the subscription's own currency decides and unknown
    codes fall back to the code itself.
    """
    if not use_subscription_currency:
        return default_symbol
    return CURRENCY_SYMBOLS.get(subscription.currency, subscription.currency)


def compose_reminder_body(
    subscription: DueSubscription,
    default_reminder_days: int = 3,
    currency_symbol: str = "$",
    use_subscription_currency: bool = False,
) -> str:
    # Falsy lead time (missing or 0) reads as the default, whatever offset matched
    days_before = subscription.reminder_days or default_reminder_days
    symbol = resolve_currency_symbol(
        subscription, currency_symbol, use_subscription_currency
    )
    return (
        f"Your {subscription.service_name} subscription for "
        f"{symbol}{subscription.cost:.2f} is due in {days_before} days."
    )


def build_dedupe_key(subscription: DueSubscription) -> str:
    """Deterministic key for one reminder of one subscription on one due date."""
    offset = subscription.matched_offset or subscription.reminder_days
    return (
        f"{subscription.id}:{subscription.next_bill_date.strftime('%Y-%m-%d')}:{offset}"
    )
