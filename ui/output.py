"""
Output formatting -- JSON export, plain text, and CSV.
"""
from __future__ import annotations

import json
import os
from typing import Any, Dict

from meter.models import MeasurementRecord


def record_to_json(record: MeasurementRecord) -> Dict[str, Any]:
    """JSON-serialisable view of *record* with a nested summary block."""
    result = record.to_dict()
    result["summary"] = {
        "ping": record.ping_ms,
        "jitter": record.jitter_ms,
        "packet_loss": record.packet_loss_pct,
        "download_mbps": record.download_mbps,
        "upload_mbps": record.upload_mbps,
    }
    return result


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except (IOError, OSError) as exc:
        # Clean up partial temp file
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise IOError(f"Failed to save JSON to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Plain-text / CSV helpers
# ---------------------------------------------------------------------------

def format_text_result(record: MeasurementRecord) -> str:
    sep = "=" * 50
    mid = "-" * 50
    lines = [
        sep,
        "Speed Test Results",
        sep,
        f"Server: {record.server.name} ({record.server.location})",
        f"Network: {record.network.connection_type}",
        f"IP: {record.network.ip_address or '?'}",
        mid,
        f"Ping: {record.ping_ms:.0f} ms (jitter: {record.jitter_ms:.0f} ms)",
    ]
    if record.packet_loss_pct > 0:
        lines.append(f"Packet Loss: {record.packet_loss_pct:.1f}%")
    lines.append(f"Download: {record.download_mbps:.2f} Mbps")
    lines.append(f"Upload: {record.upload_mbps:.2f} Mbps")
    lines.append(sep)
    return "\n".join(lines)


def _csv_escape(value: str) -> str:
    """Quote a CSV field if it contains a comma, quote or newline."""
    if any(c in value for c in (",", '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def format_csv_header() -> str:
    return "id,timestamp,server,connection,ping_ms,jitter_ms,packet_loss_pct,download_mbps,upload_mbps"


def format_csv_row(record: MeasurementRecord) -> str:
    return ",".join([
        _csv_escape(record.id),
        record.timestamp.isoformat(),
        _csv_escape(record.server.name),
        _csv_escape(record.network.connection_type),
        f"{record.ping_ms:.0f}",
        f"{record.jitter_ms:.0f}",
        f"{record.packet_loss_pct:.1f}",
        f"{record.download_mbps:.2f}",
        f"{record.upload_mbps:.2f}",
    ])


def append_csv(path: str, record: MeasurementRecord) -> None:
    """Append a single CSV row, writing the header if the file is new."""
    write_header = not os.path.isfile(path) or os.path.getsize(path) == 0
    with open(path, "a", encoding="utf-8") as fh:
        if write_header:
            fh.write(format_csv_header() + "\n")
        fh.write(format_csv_row(record) + "\n")
