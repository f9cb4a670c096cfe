"""
Reporters - Write scan results to a file as JSON, CSV, XML or plain text.
"""

import csv
import json
import xml.etree.ElementTree as ET
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import structlog

from ..core.models import ScanResult


OUTPUT_FORMATS = ("text", "json", "csv", "xml")

CSV_COLUMNS = ["word", "status", "content_length", "response_time_ms", "word_count", "url"]


logger = structlog.get_logger(__name__)


def build_report(
    results: Iterable[ScanResult],
    summary: Optional[Dict[str, Any]] = None,
    target: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Assemble the JSON report structure.

    Args:
        results: Accepted results (written in wordlist order)
        summary: SessionSummary.to_dict()
        target: Target base URL
    """
    ordered = sorted(results, key=lambda r: r.candidate.index)
    return {
        "target": target,
        "generated_at": datetime.now().isoformat(),
        "summary": summary or {},
        "results": [r.to_dict() for r in ordered],
    }


def write_json(path: Path, results: List[ScanResult], summary, target):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(build_report(results, summary, target), f, indent=2)


def write_csv(path: Path, results: List[ScanResult], summary, target):
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for result in sorted(results, key=lambda r: r.candidate.index):
            writer.writerow(result.to_dict())


def write_xml(path: Path, results: List[ScanResult], summary, target):
    root = ET.Element("scan_results")
    if target:
        root.set("target", target)

    if summary:
        summary_el = ET.SubElement(root, "summary")
        for key, value in summary.items():
            ET.SubElement(summary_el, key).text = str(value)

    for result in sorted(results, key=lambda r: r.candidate.index):
        entry = ET.SubElement(root, "result")
        for key in CSV_COLUMNS:
            ET.SubElement(entry, key).text = str(result.to_dict()[key])

    tree = ET.ElementTree(root)
    ET.indent(tree)
    tree.write(path, encoding="utf-8", xml_declaration=True)


def write_text(path: Path, results: List[ScanResult], summary, target):
    with open(path, "w", encoding="utf-8") as f:
        for result in sorted(results, key=lambda r: r.candidate.index):
            outcome = result.outcome
            f.write(
                f"{result.path}: {outcome.status} "
                f"[{outcome.length}B] [{int(outcome.elapsed * 1000)}ms] {result.url}\n"
            )


WRITERS = {
    "json": write_json,
    "csv": write_csv,
    "xml": write_xml,
    "text": write_text,
}


def save_results(
    path,
    fmt: str,
    results: List[ScanResult],
    summary: Optional[Dict[str, Any]] = None,
    target: Optional[str] = None,
) -> Path:
    """
    Save results to a file.

    Args:
        path: Output file (parent directories are created)
        fmt: One of OUTPUT_FORMATS
        results: Accepted results
        summary: Session summary dictionary
        target: Target base URL

    Returns:
        The path written
    """
    if fmt not in WRITERS:
        raise ValueError(f"Unknown output format {fmt!r}, expected one of {OUTPUT_FORMATS}")

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    WRITERS[fmt](output_path, results, summary, target)

    logger.info("results_saved", path=str(output_path), format=fmt, count=len(results))
    return output_path
