"""Checkout payment-fields markup.

Card number, expiry and CVC inputs are rendered without `name` attributes so
the browser never posts raw card data; only the processor token produced by
the client-side library is submitted.
"""

import html

from stripegate.common.config import GatewaySettings
from stripegate.services.checkout.saved_cards import SavedCardReference


def _form_field(
    key: str,
    label: str,
    input_class: str,
    row_class: str = "",
    placeholder: str = "",
    maxlength: int | None = None,
    pattern: str | None = None,
    named: bool = True,
    clear: bool = False,
) -> str:
    """Render one required text input row."""

    attrs = [
        'type="text"',
        f'class="input-text {html.escape(input_class)}"',
        f'id="{html.escape(key)}"',
    ]
    if named:
        attrs.append(f'name="{html.escape(key)}"')
    if placeholder:
        attrs.append(f'placeholder="{html.escape(placeholder)}"')
    if maxlength is not None:
        attrs.append(f'maxlength="{maxlength}"')
    attrs.append('autocomplete="off"')
    if pattern is not None:
        attrs.append(f'pattern="{html.escape(pattern)}"')
    attrs.append('novalidate="novalidate"')

    row = (
        f'<p class="form-row {html.escape(row_class)} validate-required" id="{html.escape(key)}_field">'
        f'<label for="{html.escape(key)}">{html.escape(label)} '
        f'<abbr class="required" title="required">*</abbr></label>'
        f'<input {" ".join(attrs)} /></p>'
    )
    if clear:
        row += '<div class="clear"></div>'
    return row


def _saved_card_options(saved_cards: list[SavedCardReference]) -> str:
    parts = []
    last = len(saved_cards) - 1
    for i, card in enumerate(saved_cards):
        # Most recently added card is preselected.
        checked = " checked" if i == last else ""
        parts.append(
            f'<input type="radio" id="stripe_card_{i}" name="wc_stripe_card" value="{i}"{checked}>'
            f'<label for="stripe_card_{i}">Card ending with {html.escape(card.last4)} '
            f"({card.exp_month}/{card.exp_year})</label><br>"
        )
    parts.append(
        '<input type="radio" id="new_card" name="wc_stripe_card" value="new">'
        '<label for="new_card">Use a new credit card</label>'
    )
    return "".join(parts)


def render_payment_fields(settings: GatewaySettings, saved_cards: list[SavedCardReference]) -> str:
    """Return the payment form shown at checkout.

    `saved_cards` should be empty for guests; when present, a radio per card
    plus a "new card" option precedes the card inputs.
    """

    parts = []
    if saved_cards:
        parts.append(_saved_card_options(saved_cards))

    parts.append('<div id="wc_stripe-creditcard-form">')
    if settings.additional_fields:
        parts.append(
            _form_field("billing-name", "Name on Card", "wc_stripe-billing-name", row_class="form-row-first")
        )
        parts.append(
            _form_field(
                "billing-zip",
                "Billing Zip",
                "wc_stripe-billing-zip",
                row_class="form-row-last",
                clear=True,
            )
        )
    parts.append(
        _form_field(
            "card-number",
            "Card Number",
            "wc_stripe-card-number",
            placeholder="•••• •••• •••• ••••",
            maxlength=20,
            pattern=r"\d*",
            named=False,
        )
    )
    parts.append(
        _form_field(
            "card-expiry",
            "Expiry (MM/YY)",
            "wc_stripe-card-expiry",
            row_class="form-row-first",
            placeholder="MM / YY",
            pattern=r"\d*",
            named=False,
        )
    )
    parts.append(
        _form_field(
            "card-cvc",
            "Card Code",
            "wc_stripe-card-cvc",
            row_class="form-row-last",
            placeholder="CVC",
            pattern=r"\d*",
            named=False,
            clear=True,
        )
    )
    parts.append("</div>")
    return "".join(parts)
