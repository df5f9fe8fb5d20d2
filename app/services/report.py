"""Report generation: query -> findings -> PDF document and ZIP bundle.

gather_findings is a deterministic stand-in for the data-gathering job.
The renderers are pure functions of the findings, so generate() is safe to
retry.
"""

import csv
import io
import json
import textwrap
import zipfile
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List
from urllib.parse import quote

from app.core.clock import utcnow
from app.models.order import Plan

# fixed timestamp inside the bundle so identical findings give identical bytes
_ZIP_DATE = (1980, 1, 1, 0, 0, 0)


@dataclass
class Finding:
    type: str
    value: str
    source: str | None = None


@dataclass
class ReportData:
    target: str
    plan: str
    generated_at: str
    findings: List[Finding] = field(default_factory=list)


@dataclass
class GeneratedReport:
    document: bytes
    bundle: bytes


def gather_findings(query: str, plan: Plan) -> List[Finding]:
    slug = quote(query.strip().lower().replace(" ", ""), safe="")
    handle = quote(query.strip(), safe="")
    findings = [
        Finding("email", f"{slug}@example.com", "public directory"),
        Finding("profile", f"https://social.example/{handle}", "social index"),
    ]
    if plan == Plan.PRO:
        findings += [
            Finding("domain", f"{slug}.example", "whois"),
            Finding("repository", f"https://code.example/{handle}", "code search"),
            Finding("mention", f"https://news.example/search?q={handle}", "news archive"),
        ]
    return findings


def _escape(text: str) -> str:
    text = text.encode("latin-1", "replace").decode("latin-1")
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _wrap(text: str, width: int = 90) -> List[str]:
    return textwrap.wrap(text, width=width) or [""]


def _report_lines(report: ReportData) -> List[str]:
    lines = [
        "Report",
        "",
        f"Target: {report.target}",
        f"Plan: {report.plan}",
        f"Generated: {report.generated_at}",
        "",
        "Findings:",
    ]
    for i, f in enumerate(report.findings, start=1):
        lines.extend(_wrap(f"{i}. [{f.type}] {f.value}"))
        if f.source:
            lines.extend(_wrap(f"   Source: {f.source}"))
    return lines


def _page_stream(lines: List[str]) -> bytes:
    y = 780
    parts = ["BT", "/F1 11 Tf"]
    for line in lines:
        parts.append(f"1 0 0 1 50 {y} Tm ({_escape(line)}) Tj")
        y -= 14
    parts.append("ET")
    return ("\n".join(parts) + "\n").encode("latin-1")


def render_pdf(report: ReportData, lines_per_page: int = 50) -> bytes:
    """Render a minimal single-font PDF, one page per ``lines_per_page`` lines."""
    lines = _report_lines(report)
    pages = [lines[i:i + lines_per_page] for i in range(0, len(lines), lines_per_page)]

    # object numbers: 1 catalog, 2 pages, 3 font, then (page, content) pairs
    page_ids = [4 + 2 * i for i in range(len(pages))]
    objects: List[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        (
            "<< /Type /Pages /Kids ["
            + " ".join(f"{pid} 0 R" for pid in page_ids)
            + f"] /Count {len(pages)} >>"
        ).encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    for pid, page_lines in zip(page_ids, pages):
        stream = _page_stream(page_lines)
        objects.append(
            (
                f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 595 842] "
                f"/Resources << /Font << /F1 3 0 R >> >> /Contents {pid + 1} 0 R >>"
            ).encode()
        )
        objects.append(
            f"<< /Length {len(stream)} >>\nstream\n".encode() + stream + b"endstream"
        )

    out = io.BytesIO()
    out.write(b"%PDF-1.4\n")
    offsets = []
    for num, body in enumerate(objects, start=1):
        offsets.append(out.tell())
        out.write(f"{num} 0 obj\n".encode() + body + b"\nendobj\n")

    xref = out.tell()
    out.write(f"xref\n0 {len(objects) + 1}\n".encode())
    out.write(b"0000000000 65535 f \n")
    for off in offsets:
        out.write(f"{off:010d} 00000 n \n".encode())
    out.write(
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref}\n%%EOF\n".encode()
    )
    return out.getvalue()


def build_bundle(report: ReportData, document: bytes) -> bytes:
    """ZIP with the PDF plus the findings as JSON and CSV."""
    findings_csv = io.StringIO()
    writer = csv.writer(findings_csv)
    writer.writerow(["type", "value", "source"])
    for f in report.findings:
        writer.writerow([f.type, f.value, f.source or ""])

    entries = {
        "report.pdf": document,
        "report.json": json.dumps(asdict(report), indent=2).encode("utf-8"),
        "findings.csv": findings_csv.getvalue().encode("utf-8"),
    }

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(zipfile.ZipInfo(name, date_time=_ZIP_DATE), data)
    return buf.getvalue()


class ReportGenerator:
    def build_report(self, query: str, plan: Plan, now: datetime | None = None) -> ReportData:
        return ReportData(
            target=query,
            plan=plan.value,
            generated_at=(now or utcnow()).isoformat(),
            findings=gather_findings(query, plan),
        )

    def generate(self, query: str, plan: Plan) -> GeneratedReport:
        report = self.build_report(query, plan)
        document = render_pdf(report)
        return GeneratedReport(document=document, bundle=build_bundle(report, document))
