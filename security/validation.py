import ipaddress

from utils.blocklist import normalize_identity, normalize_ip

MAX_IDENTITY_LEN = 255


class ValidationError(ValueError):
    """Malformed identity or IP input. Raised before anything is written."""


def validate_identity(value) -> str:
    if not isinstance(value, str):
        raise ValidationError("Identity must be a string")
    identity = normalize_identity(value)
    if not identity:
        raise ValidationError("Identity is required")
    if len(identity) > MAX_IDENTITY_LEN:
        raise ValidationError("Identity is too long")
    return identity


def validate_ip(value) -> str:
    if not isinstance(value, str):
        raise ValidationError("IP address must be a string")
    ip = normalize_ip(value)
    try:
        return str(ipaddress.ip_address(ip))
    except ValueError:
        raise ValidationError(f"Invalid IP address: {value!r}") from None


def canonical_ip(value) -> str:
    """Lookup form of an IP: the stored canonical spelling, or the trimmed input if it does not parse."""
    try:
        return validate_ip(value)
    except ValidationError:
        return normalize_ip(value) if isinstance(value, str) else ""
