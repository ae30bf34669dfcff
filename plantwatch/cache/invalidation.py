"""Which cached views go stale when a record family changes."""

from enum import Enum
from types import MappingProxyType
from typing import Mapping, Tuple

from plantwatch.errors import InvalidArgument


class Domain(str, Enum):
    """Record families whose mutations invalidate derived views."""
    EQUIPMENT = "equipment"
    STATUS = "status"
    BREAKDOWN = "breakdown"
    REPAIR = "repair"
    DASHBOARD = "dashboard"


# Key patterns (full-match regexes) to drop when a domain changes. Status
# changes touch equipment views and the dashboard but not report listings.
RELATED_PATTERNS: Mapping[Domain, Tuple[str, ...]] = MappingProxyType({
    Domain.EQUIPMENT: ("equipment.*", "dashboard.*"),
    Domain.STATUS: ("status.*", "equipment.*", "dashboard.*"),
    Domain.BREAKDOWN: ("breakdown.*", "status.*", "dashboard.*"),
    Domain.REPAIR: ("repair.*", "status.*", "dashboard.*"),
    Domain.DASHBOARD: ("dashboard.*",),
})


def parse_domain(domain: Domain | str) -> Domain:
    """Accept a Domain or its string value; anything else is rejected."""
    try:
        return Domain(domain)
    except ValueError:
        allowed = ", ".join(d.value for d in Domain)
        raise InvalidArgument(f"Unknown domain '{domain}'. Expected one of: {allowed}") from None
