"""Month grouping for display.

Groups are keyed by the (year, month) of each entry's timestamp and ordered by
that key; the label is derived from the key for display only.
"""

from .utils import parse_iso

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def month_key(entry, tz=None):
    dt = parse_iso(entry["timestamp"])
    if tz is not None:
        dt = dt.astimezone(tz)
    return dt.year, dt.month


def month_label(year, month):
    if not 1 <= int(month) <= 12:
        raise ValueError(f"month out of range: {month}")
    return f"{MONTH_NAMES[int(month) - 1]} {int(year)}"


def group_by_month(entries, tz=None):
    """Partition ``entries`` into ``[(label, [entry, ...]), ...]``.

    Groups come most recent month first; entries inside a group keep the
    order they had in ``entries``. Months are taken in UTC unless ``tz`` is
    given.
    """
    groups = {}
    for entry in entries:
        groups.setdefault(month_key(entry, tz=tz), []).append(entry)

    return [(month_label(*key), groups[key]) for key in sorted(groups, reverse=True)]
