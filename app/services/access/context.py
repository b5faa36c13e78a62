"""Per-request caller context passed explicitly into access operations."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RequestContext:
    """Who is calling, as far as the public flow can tell. Used for auditing."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    actor: Optional[str] = None  # 'public', 'staff', 'cli'


SYSTEM_CONTEXT = RequestContext(actor="system")
