def _iso(value):
    return value.isoformat() if value else None


def _location(row):
    if row.city and row.country:
        return f"{row.city}, {row.country}"
    return row.country


def session_json(s):
    if s is None:
        return None
    return {
        "id": s.id,
        "user_id": s.user_id,
        "ip": s.ip,
        "user_agent": s.user_agent,
        "created_at": _iso(s.created_at),
        "last_activity": _iso(s.last_activity),
        "expires_at": _iso(s.expires_at),
        "is_active": s.is_active,
        "location": _location(s),
        "country_code": s.country_code,
        "device_type": s.device_type,
        "browser": s.browser,
        "operating_system": s.operating_system,
        "is_suspicious": s.is_suspicious,
        "security_notes": s.security_notes,
        "terminated_at": _iso(s.terminated_at),
        "termination_reason": s.termination_reason,
    }


def attempt_json(a):
    return {
        "id": a.id,
        "identity": a.identity,
        "ip": a.ip,
        "user_agent": a.user_agent,
        "attempt_time": _iso(a.attempt_time),
        "failure_reason": a.failure_reason,
        "location": _location(a),
        "country_code": a.country_code,
        "is_suspicious": a.is_suspicious,
        "risk_factors": a.risk_factors,
    }


def summary_json(summary):
    return {
        "from": _iso(summary["from"]),
        "to": _iso(summary["to"]),
        "total_attempts": summary["total_attempts"],
        "unique_ips": summary["unique_ips"],
        "suspicious_attempts": summary["suspicious_attempts"],
        "top_targeted_accounts": [
            {"identity": identity, "attempts": n} for identity, n in summary["top_targeted_accounts"]
        ],
        "top_attacking_ips": [{"ip": ip, "attempts": n} for ip, n in summary["top_attacking_ips"]],
        "recent_attempts": [attempt_json(a) for a in summary["recent_attempts"]],
    }
