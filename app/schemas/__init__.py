"""
app/schemas package marker.
"""

from app.schemas.evidence import Evidence, EvidenceDetail
from app.schemas.ticket import Ticket, build_ticket_id, parse_ticket_id

__all__ = [
    "Evidence",
    "EvidenceDetail",
    "Ticket",
    "build_ticket_id",
    "parse_ticket_id",
]
