"""Domain name checks and domain set construction."""

from typing import Iterable, List

from .errors import ValidationError

# All non alphanumeric characters that can never appear in a host name.
FORBIDDEN_CHARACTERS = "`~!@#$%^&*()+={}[]|\\\"';:><?/"

# Characters a host name may not start or end with.
EDGE_CHARACTERS = ("-", "_", ".")

MAX_DOMAIN_LENGTH = 255


def is_valid_domain(host: str) -> bool:
    """Check whether ``host`` is a syntactically acceptable domain name.

    See RFC 1035 and RFC 3696. The check is loose: names that
    pass here but are still invalid fail later at the CA.

    Besides the whole-name edge rule, no label may start or end with a
    hyphen, so "bad-.com" is rejected even though its first and last
    characters are fine.
    """
    host = host.strip()
    if not host or len(host) > MAX_DOMAIN_LENGTH:
        return False
    if host.startswith(EDGE_CHARACTERS) or host.endswith(EDGE_CHARACTERS):
        return False
    # No label may start or end with a hyphen either ("bad-.com")
    if any(label.startswith("-") or label.endswith("-") for label in host.split(".")):
        return False
    return not any(c in FORBIDDEN_CHARACTERS for c in host)


def is_sub_domain(domain: str) -> bool:
    """More than two dot separated labels means ``domain`` is a subdomain."""
    return len(domain.split(".")) > 2


def build_domain_set(domain: str, sub_domains: Iterable[str] = ()) -> List[str]:
    """Return the primary domain followed by each ``sub.domain``.

    Subdomains are ignored when the primary domain is itself a subdomain.
    """
    domains = [domain]
    if not is_sub_domain(domain):
        domains.extend(f"{sub_domain}.{domain}" for sub_domain in sub_domains)
    return domains


def ensure_valid_domains(domains: Iterable[str]) -> List[str]:
    """Raise ValidationError for the first invalid entry of ``domains``."""
    checked = []
    for domain in domains:
        if not is_valid_domain(domain):
            raise ValidationError(domain)
        checked.append(domain)
    return checked
