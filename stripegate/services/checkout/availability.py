"""Gateway readiness checks.

`check_gateway` backs the admin-facing warnings; `is_available` decides
whether checkout may offer the gateway for a given request.
"""

from stripegate.common.config import GatewaySettings
from stripegate.common.errors import ConfigurationError


def check_gateway(settings: GatewaySettings) -> list[ConfigurationError]:
    """Return every configuration problem that keeps the gateway from working."""

    if not settings.enabled:
        return []
    problems = []
    if not settings.publishable_key or not settings.secret_key:
        problems.append(
            ConfigurationError(
                "Stripe needs API Keys to work, please find your secret and publishable keys "
                "in the Stripe account settings."
            )
        )
    if not settings.testmode and not settings.force_ssl_checkout:
        problems.append(
            ConfigurationError("Stripe needs SSL in order to be secure. Force SSL on checkout to continue.")
        )
    return problems


def is_available(settings: GatewaySettings, is_ssl: bool) -> bool:
    if not settings.enabled:
        return False
    if not settings.publishable_key or not settings.secret_key:
        return False
    # Live mode is only offered over HTTPS.
    if not is_ssl and not settings.testmode:
        return False
    return True
