import csv
import io
import json
import zipfile
from datetime import datetime, timezone

from app.models.order import Plan
from app.services.report import ReportGenerator, build_bundle, gather_findings, render_pdf

NOW = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_findings_depth_depends_on_plan():
    basic = gather_findings("Acme Corp", Plan.BASIC)
    pro = gather_findings("Acme Corp", Plan.PRO)

    assert [f.type for f in basic] == ["email", "profile"]
    assert len(pro) == 5
    assert pro[:2] == basic
    assert basic[0].value == "acmecorp@example.com"
    assert basic[1].value == "https://social.example/Acme%20Corp"


def test_findings_are_deterministic():
    assert gather_findings("acme", Plan.PRO) == gather_findings("acme", Plan.PRO)


def test_render_pdf_structure():
    report = ReportGenerator().build_report("acme (ltd)", Plan.PRO, now=NOW)

    pdf = render_pdf(report)

    assert pdf.startswith(b"%PDF-1.4")
    assert pdf.rstrip().endswith(b"%%EOF")
    assert b"Target: acme \\(ltd\\)" in pdf
    assert b"/Count 1" in pdf


def test_render_pdf_paginates():
    report = ReportGenerator().build_report("acme", Plan.PRO, now=NOW)

    pdf = render_pdf(report, lines_per_page=5)

    assert b"/Count 4" in pdf


def test_bundle_contents():
    report = ReportGenerator().build_report("acme", Plan.BASIC, now=NOW)
    document = render_pdf(report)

    with zipfile.ZipFile(io.BytesIO(build_bundle(report, document))) as zf:
        assert zf.read("report.pdf") == document
        data = json.loads(zf.read("report.json"))
        rows = list(csv.reader(io.StringIO(zf.read("findings.csv").decode())))

    assert data["target"] == "acme"
    assert data["plan"] == "BASIC"
    assert data["generated_at"] == NOW.isoformat()
    assert rows[0] == ["type", "value", "source"]
    assert len(rows) == 3


def test_bundle_is_reproducible():
    report = ReportGenerator().build_report("acme", Plan.PRO, now=NOW)
    document = render_pdf(report)

    assert build_bundle(report, document) == build_bundle(report, document)


def test_generate_returns_both_artifacts():
    out = ReportGenerator().generate("acme", Plan.PRO)

    assert out.document.startswith(b"%PDF")
    assert zipfile.is_zipfile(io.BytesIO(out.bundle))
