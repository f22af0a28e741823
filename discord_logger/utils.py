def split_identifiers(value: str | None, separator: str = ":") -> list[str]:
    """Split a colon-delimited list of container identifiers, dropping empty entries."""
    return [s.strip() for s in value.split(separator) if s.strip()] if value else []


def merge_with_precedence(precedence: dict | None, fallback: dict | None) -> dict:
    """
    Shallow precedence merge used to lay environment variables over the yaml config.

    Rules:
    - `None` in precedence means "not set" -> fallback is kept.
    - Nested dicts are merged recursively.
    - Anything else in precedence replaces the fallback value.
    """
    precedence = precedence or {}
    merged = dict(fallback or {})
    for key, p_val in precedence.items():
        if p_val is None:
            continue
        f_val = merged.get(key)
        if isinstance(p_val, dict) and isinstance(f_val, dict):
            merged[key] = merge_with_precedence(p_val, f_val)
        else:
            merged[key] = p_val
    return merged
