from datetime import datetime, timezone


def format_iso(dt):
    # Fixed width (always microseconds, always UTC) so stored values sort as text.
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_iso():
    return format_iso(datetime.now(timezone.utc))


def parse_iso(value):
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def as_text(s):
    """Entry text is stored exactly as given; only None becomes empty."""
    if s is None:
        return ""
    return str(s)


def as_flag(value):
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def escape_like(s, escape="\\"):
    return s.replace(escape, escape * 2).replace("%", escape + "%").replace("_", escape + "_")
