"""Per-flow payload summary charts for synthesized captures."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping

import plotly.express as px

from synthcap.logging_utils import get_logger
from synthcap.parser import summarize_capture

LOGGER = get_logger(__name__)


def to_plot_rows(summary: Mapping[str, Any]) -> List[Dict[str, object]]:
    rows: List[Dict[str, object]] = []
    for flow_id, metrics in sorted(summary.get("flows", {}).items()):
        rows.append({"flow_id": flow_id, "metric": "payload bytes", "value": metrics.get("bytes", 0)})
        rows.append({"flow_id": flow_id, "metric": "segments", "value": metrics.get("segments", 0)})
    return rows


def render_summary(pcap_path: str | Path, output_dir: str | Path | None = None) -> Path:
    """Render a per-flow payload bytes / segment count chart next to the capture."""

    capture_file = Path(pcap_path)
    summary = summarize_capture(capture_file)
    rows = to_plot_rows(summary)

    target_dir = Path(output_dir) if output_dir else capture_file.parent
    target_dir.mkdir(parents=True, exist_ok=True)
    output_path = target_dir / "summary.html"

    if not rows:
        placeholder = """
        <!DOCTYPE html>
        <html lang="en">
        <head><meta charset="utf-8"><title>synthcap summary</title></head>
        <body><h1>synthcap summary</h1><p>No TCP records in capture.</p></body>
        </html>
        """
        output_path.write_text(placeholder, encoding="utf-8")
        LOGGER.info("No records in %s; wrote placeholder to %s", pcap_path, output_path)
        return output_path

    fig = px.bar(
        rows,
        x="flow_id",
        y="value",
        color="metric",
        barmode="group",
        labels={"flow_id": "Flow", "value": "Count", "metric": "Metric"},
        title=f"synthcap flow summary ({summary['records']} records)",
    )

    fig.update_layout(margin=dict(l=40, r=40, t=80, b=40))

    fig.write_html(output_path, include_plotlyjs="cdn", full_html=True)
    LOGGER.info("Wrote summary chart with %s data points to %s", len(rows), output_path)
    return output_path


__all__ = ["render_summary", "to_plot_rows"]
