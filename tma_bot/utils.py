from urllib.parse import quote

# Эти символы в параметрах ссылки не экранируются
_UNRESERVED = "!~*'()"


def append_query_param(base_url: str, key: str, value: str) -> str:
    if not base_url:
        return base_url
    joiner = "&" if "?" in base_url else "?"
    return f"{base_url}{joiner}{quote(key, safe=_UNRESERVED)}={quote(value, safe=_UNRESERVED)}"


def parse_start_payload(payload: str | None) -> tuple[str | None, str | None]:
    """
    Разбирает payload команды /start вида ``<реф. код>__<кампания>``.
    Пустые части возвращаются как None.
    """
    if not payload:
        return None, None
    parts = payload.split("__")
    referral_code = parts[0].strip() or None
    campaign = parts[1].strip() if len(parts) > 1 else ""
    return referral_code, campaign or None
