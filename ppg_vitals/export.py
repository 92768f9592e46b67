"""CSV export / import of raw PPG samples (``Timestamp,PPG``)."""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from ppg_vitals.config import DEFAULT_SAMPLE_RATE_HZ
from ppg_vitals.records import SessionRecord, SignalSample

CSV_HEADER = ("Timestamp", "PPG")


def format_timestamp(ms: int) -> str:
    """UTC ISO-8601 with milliseconds and a ``Z`` suffix."""
    dt = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(text: str) -> int:
    """Inverse of :func:`format_timestamp`; also accepts plain integer ms."""
    text = text.strip()
    if text.lstrip("-").isdigit():
        return int(text)
    dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(round(dt.timestamp() * 1000))


def format_value(value: float) -> str:
    """Shortest decimal text; integral values carry no ``.0``."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def samples_in_window(
    samples: Iterable[SignalSample],
    start_ms: Optional[int] = None,
    end_ms: Optional[int] = None,
) -> List[SignalSample]:
    """Samples with ``start_ms <= timestamp <= end_ms`` (open bounds if None)."""
    return [
        s for s in samples
        if (start_ms is None or s.timestamp >= start_ms)
        and (end_ms is None or s.timestamp <= end_ms)
    ]


def session_to_csv(
    session: SessionRecord,
    start_ms: Optional[int] = None,
    end_ms: Optional[int] = None,
) -> str:
    """Render the raw samples of *session* within the window as CSV text."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for s in samples_in_window(session.samples, start_ms, end_ms):
        writer.writerow((format_timestamp(s.timestamp), format_value(s.value)))
    return buf.getvalue()


def write_session_csv(
    path: Path,
    session: SessionRecord,
    start_ms: Optional[int] = None,
    end_ms: Optional[int] = None,
) -> Path:
    """Write :func:`session_to_csv` output to *path*, creating directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        fh.write(session_to_csv(session, start_ms, end_ms))
    return path


def export_filename(session: SessionRecord) -> str:
    """``<id>_<name>.csv`` with non-alphanumerics stripped from the name."""
    name = "".join(ch for ch in (session.patient_name or "") if ch.isalnum()) or "user"
    return f"{session.id}_{name}.csv"


def read_samples_csv(path: Path) -> List[SignalSample]:
    """
    Load samples from a ``Timestamp,PPG`` CSV.

    A file without a recognised header is read as one value per row (with
    an optional timestamp column first), stamped at the nominal rate from zero.
    """
    path = Path(path)
    samples: List[SignalSample] = []
    with path.open("r", newline="", encoding="utf-8") as fh:
        rows = [row for row in csv.reader(fh) if row]

    if not rows:
        return samples

    has_header = [c.strip() for c in rows[0]] == list(CSV_HEADER)
    body = rows[1:] if has_header else rows
    for i, row in enumerate(body):
        if has_header or len(row) >= 2:
            samples.append(SignalSample(timestamp=parse_timestamp(row[0]), value=float(row[1])))
        else:
            ts = int(round(i * 1000 / DEFAULT_SAMPLE_RATE_HZ))
            samples.append(SignalSample(timestamp=ts, value=float(row[0])))
    return samples
