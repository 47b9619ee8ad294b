"""
DNS query encoding.

Builds the minimal single-question query sent through the relay:
random transaction ID, RD flag only, one A/IN question, no EDNS.
"""

import dns.exception
import dns.message
import dns.name
import dns.rdataclass
import dns.rdatatype

from .errors import EncodingError

MAX_LABEL_LENGTH = 63


def _check_labels(domain: str) -> None:
    labels = domain[:-1].split(".") if domain.endswith(".") else domain.split(".")
    for label in labels:
        if not label:
            raise EncodingError(f"Empty label in domain: {domain!r}")
        # Non-ASCII labels are length-checked by dnspython after IDNA encoding
        if label.isascii() and len(label) > MAX_LABEL_LENGTH:
            raise EncodingError(
                f"Label {label[:16]!r}... exceeds {MAX_LABEL_LENGTH} bytes"
            )


def encode(domain: str) -> bytes:
    """
    Encode an A-record query for a domain name.

    Args:
        domain: Domain name to query (a single trailing dot is allowed)

    Returns:
        DNS wire-format query message

    Raises:
        EncodingError: If the domain is empty or not a valid DNS name
    """
    if not isinstance(domain, str):
        raise TypeError(f"domain must be str, not {type(domain).__name__}")

    domain = domain.strip()
    if not domain or domain == ".":
        raise EncodingError("Domain must not be empty")

    _check_labels(domain)

    try:
        qname = dns.name.from_text(domain)
    except (dns.exception.DNSException, UnicodeError) as e:
        raise EncodingError(f"Invalid domain {domain!r}: {e}") from e

    message = dns.message.make_query(
        qname,
        dns.rdatatype.A,
        dns.rdataclass.IN,
        use_edns=False,
    )
    return message.to_wire()
