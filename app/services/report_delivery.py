"""
app/services/report_delivery.py

Report delivery collaborators invoked after a run is persisted.

PDF and HTML renderers live outside this package; they plug in by
implementing :class:`ReportGenerator`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from app.domain.audit import AuditResult
from app.services.csv_export_service import export_tickets_csv_bytes
from app.storage.base import BlobStorage, UploadError

logger = logging.getLogger(__name__)


class ReportDeliveryError(Exception):
    """Raised when a report cannot be produced or stored."""


class ReportGenerator(ABC):
    """
    Contract for report delivery backends.
    """

    @abstractmethod
    def generate(self, result: AuditResult) -> dict[str, str]:
        """
        Produce reports for a persisted run.

        Returns
        -------
        dict[str, str]
            Report format mapped to its public URL.
        """

    def close(self) -> None:
        """Release renderer resources. Default: nothing to release."""


class CsvReportGenerator(ReportGenerator):
    """
    Uploads the promoted tickets as CSV under the run's render key.
    """

    def __init__(self, storage: BlobStorage) -> None:
        self._storage = storage

    def generate(self, result: AuditResult) -> dict[str, str]:
        url_context = str(result.report_meta.get("url") or "")
        payload = export_tickets_csv_bytes(result.exports.tickets, url_context=url_context)
        try:
            upload = self._storage.upload(
                result.keys.render_key,
                None,
                payload,
                kind="csv",
                overwrite=True,
                check_existing=False,
            )
        except UploadError as exc:
            raise ReportDeliveryError(f"CSV upload failed: {exc}") from exc
        logger.info("CSV report stored path=%s size=%d", upload.path, upload.size)
        return {"csv": upload.public_url}
