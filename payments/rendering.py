"""HTML bodies handed back to the HTTP layer.

Every function takes an explicit `debug` flag that is passed to the template
as its `debug` variable, overriding whatever the debug context processor
would set. Bodies that go to a payment provider are always rendered with
``debug=False``.
"""

from django.template.loader import render_to_string

from payments.gateways import GatewayResponse, hidden_inputs


def render_post_redirect(response: GatewayResponse, *, template_name: str = "", debug: bool = False) -> str:
    """Page that POSTs the customer to the provider.

    Uses the operator's template when one is configured, otherwise the
    response's own auto-submitting form.
    """

    if not template_name:
        return response.redirect_form()
    context = {
        "inputs": hidden_inputs(response.redirect_data),
        "action_url": response.redirect_url,
        "debug": debug,
    }
    return render_to_string(template_name, context)


def render_return_page(url: str, *, debug: bool = False) -> str:
    """Self-submitting page that sends the customer back to `url`."""

    return render_to_string("payments/return_redirect.html", {"url": url, "debug": debug})
