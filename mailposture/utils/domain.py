"""Domain name normalization and validation."""
from __future__ import annotations

import re
from urllib.parse import urlsplit

from mailposture.exceptions import InvalidDomainError

# Common DKIM selectors used by popular email providers.
DEFAULT_SELECTORS = [
    "default",
    "google",
    "selector1",  # Microsoft 365
    "selector2",  # Microsoft 365
    "k1",
    "k2",
    "s1",
    "s2",
    "dkim",
    "mail",
    "email",
    "smtp",
    "mandrill",
    "mailchimp",
    "amazonses",
    "ses",
    "sendgrid",
    "sg",
    "postmark",
    "pm",
    "mailgun",
    "mg",
    "sparkpost",
    "zendesk",
    "zendesk1",
    "zendesk2",
]

_LABEL_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


def normalize_domain(value: str) -> str:
    """Return *value* lower-cased, host-only and without a trailing dot.

    Raises:
        InvalidDomainError: If the result is not a syntactically valid
            domain name.
    """
    if not isinstance(value, str):
        raise InvalidDomainError(str(value))

    domain = value.strip().lower()
    if domain.startswith(("http://", "https://")):
        try:
            domain = urlsplit(domain).hostname or ""
        except ValueError:
            raise InvalidDomainError(value) from None
    if domain.endswith("."):
        domain = domain[:-1]

    if not is_valid_domain(domain):
        raise InvalidDomainError(value)
    return domain


def is_valid_domain(domain: str) -> bool:
    """Check that *domain* is an already-normalized hostname."""
    if not domain or len(domain) > 253:
        return False
    labels = domain.split(".")
    if len(labels) < 2:
        return False
    if not all(_LABEL_RE.match(label) for label in labels):
        return False
    # A purely numeric TLD means an IP address or garbage, not a domain.
    return not labels[-1].isdigit()
