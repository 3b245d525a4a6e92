def normalize_identity(value: str) -> str:
    return (value or "").strip().lower()


def normalize_ip(value: str) -> str:
    # Tolerates a pasted X-Forwarded-For chain; the client is the first entry
    return (value or "").split(",")[0].strip()
