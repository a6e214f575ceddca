"""
Contract drafting prompts.

Used after a quote is created to draft an order-form style contract. The
draft is advisory: it is stored on the quote when generation succeeds and
left empty otherwise.
"""

from ..models.quote import PaymentKind, Quote


# =============================================================================
# System Prompt
# =============================================================================

CONTRACT_SYSTEM_PROMPT = """You draft concise B2B software order forms.

Write a plain HTML fragment (no <html> or <body> tags) containing:
1. A heading with the customer name and the package purchased.
2. A table of line items: package (seats x unit price) and each add-on.
3. Subtotal, discount and total exactly as given. Never recompute prices.
4. A payment terms section reflecting the terms given.
5. A short standard terms section (term, renewal, confidentiality) in neutral language.

Rules:
- Use only the facts provided. Do not invent products, prices or dates.
- Keep it under 400 words.
"""


# =============================================================================
# User Prompt
# =============================================================================


def describe_payment_terms(quote: Quote) -> str:
    """Human-readable payment terms for the prompt."""
    if quote.payment_kind == PaymentKind.NET:
        return f'Net {quote.net_days} days'
    if quote.payment_kind == PaymentKind.PREPAY:
        return f'{quote.prepay_percent}% prepaid'
    return f'{quote.prepay_percent}% prepaid, balance net {quote.net_days} days'


def build_contract_prompt(quote: Quote, unit_price: str | None = None) -> list[dict[str, str]]:
    """
    Build the messages for contract drafting.

    Args:
        quote: The newly created quote
        unit_price: Package price per seat, if known

    Returns:
        List of message dicts for OpenAIClient.chat_completion
    """
    lines = [
        f'Customer: {quote.customer_name}',
        f'Package: {quote.package_name}',
        f'Seats: {quote.seats}',
    ]
    if unit_price is not None:
        lines.append(f'Unit price per seat: ${unit_price}')
    for add_on in quote.add_ons:
        lines.append(f'Add-on: {add_on.name} (${add_on.unit_price})')
    lines.extend(
        [
            f'Subtotal: ${quote.subtotal}',
            f'Discount: {quote.discount_percent}%',
            f'Total: ${quote.total}',
            f'Payment terms: {describe_payment_terms(quote)}',
        ]
    )

    return [
        {'role': 'system', 'content': CONTRACT_SYSTEM_PROMPT},
        {'role': 'user', 'content': '\n'.join(lines)},
    ]
