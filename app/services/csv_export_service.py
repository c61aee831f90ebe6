"""
app/services/csv_export_service.py

Flat CSV export of promoted tickets.

Column order is fixed; list fields are pipe-joined and ``quick_win`` is
written as ``true`` / ``false``.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Sequence
from typing import Any

from app.schemas.ticket import Ticket

CSV_COLUMNS: tuple[str, ...] = (
    "ticket_id",
    "mode",
    "title",
    "impact",
    "effort",
    "risk",
    "confidence",
    "category",
    "why",
    "evidence_refs",
    "how_to",
    "validation",
    "quick_win",
    "owner",
    "url_context",
)
LIST_SEPARATOR = "|"


def ticket_to_row(ticket: Ticket, url_context: str) -> dict[str, Any]:
    return {
        "ticket_id": ticket.ticket_id,
        "mode": ticket.mode,
        "title": ticket.title,
        "impact": ticket.impact,
        "effort": ticket.effort,
        "risk": ticket.risk,
        "confidence": ticket.confidence,
        "category": ticket.category,
        "why": ticket.why,
        "evidence_refs": LIST_SEPARATOR.join(ticket.evidence_refs),
        "how_to": LIST_SEPARATOR.join(ticket.how_to),
        "validation": LIST_SEPARATOR.join(ticket.validation),
        "quick_win": "true" if ticket.quick_win else "false",
        "owner": ticket.owner,
        "url_context": url_context,
    }


def export_tickets_csv(tickets: Sequence[Ticket], *, url_context: str) -> str:
    """
    Serialize tickets to CSV text, header row first.

    Parameters
    ----------
    tickets:
        Tickets in their final promoted order.
    url_context:
        The audited URL, repeated on every row.
    """

    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer,
        fieldnames=list(CSV_COLUMNS),
        quoting=csv.QUOTE_MINIMAL,
        lineterminator="\n",
    )
    writer.writeheader()
    for ticket in tickets:
        writer.writerow(ticket_to_row(ticket, url_context))
    return buffer.getvalue()


def export_tickets_csv_bytes(tickets: Sequence[Ticket], *, url_context: str) -> bytes:
    return export_tickets_csv(tickets, url_context=url_context).encode("utf-8")
