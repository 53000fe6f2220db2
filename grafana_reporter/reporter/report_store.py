import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from .config import DEFAULT_REPORT_DIR

logger = logging.getLogger(__name__)


def save_report_pdf(
    report_id: str,
    pdf_bytes: bytes,
    payload: Dict[str, Any],
    report_dir: Path = DEFAULT_REPORT_DIR,
) -> Path:
    """
    Persist a generated PDF and a small metadata sidecar under ``report_dir``.
    Returns the PDF path.
    """
    report_dir.mkdir(parents=True, exist_ok=True)
    stem = f"{report_id}-{payload.get('dashboard') or 'report'}"
    pdf_path = report_dir / f"{stem}.pdf"
    meta_path = report_dir / f"{stem}.json"

    pdf_path.write_bytes(pdf_bytes)

    metadata = {
        "report_id": report_id,
        "generated_at": payload.get("generated_at") or datetime.now(timezone.utc).isoformat(),
        "dashboard": payload.get("dashboard"),
        "title": payload.get("title"),
        "from": payload.get("from"),
        "to": payload.get("to"),
        "layout": payload.get("layout"),
        "grafana_url": payload.get("grafana_url"),
        "size_bytes": len(pdf_bytes),
        "path": str(pdf_path),
    }
    try:
        meta_path.write_text(json.dumps(metadata, indent=2), encoding="utf-8")
    except OSError as exc:
        logger.warning("Could not write report metadata %s: %s", meta_path, exc)
    return pdf_path
