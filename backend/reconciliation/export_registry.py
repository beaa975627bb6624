"""
Reconciliation Export Registry

Central registry of the download formats for a reconciliation result.
Each format has:
- Media type and file extension
- A renderer producing the file body

Supported Formats:
- CSV: comma separated, quoted where needed
- EXCEL: tab separated text that spreadsheet applications open directly
- PDF: printable HTML report
"""

import csv
import html
import io
import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List
from urllib.parse import quote

from reconciliation.matching_rules.balance_rules import ReconciliationResult

EXPORT_COLUMNS = [
    "Client Name",
    "Bank Name",
    "Opening Balance",
    "Total Credit",
    "Total Debit",
    "System Balance",
    "Bank Balance",
    "Difference",
    "Status",
    "Generated DateTime",
]

GENERATED_FORMAT = "%Y-%m-%d %H:%M:%S"
FILENAME_STAMP_FORMAT = "%Y%m%d_%H%M%S"


def ascii_filename(filename: str) -> str:
    """Latin-1 safe fallback for the plain filename= parameter."""
    folded = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"_{2,}", "_", re.sub(r"[^A-Za-z0-9._-]", "_", folded))


def content_disposition(filename: str) -> str:
    """Attachment header with an RFC 5987 filename* for non-ASCII names."""
    fallback = ascii_filename(filename)
    encoded = quote(filename, safe="")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"


class ExportFormat(str, Enum):
    CSV = "csv"
    EXCEL = "excel"
    PDF = "pdf"


def export_row(result: ReconciliationResult) -> List[str]:
    """Cells in EXPORT_COLUMNS order, money as %.2f."""
    return [
        result.client_name or "",
        result.bank_name or "",
        "%.2f" % result.opening_balance,
        "%.2f" % result.total_credit,
        "%.2f" % result.total_debit,
        "%.2f" % result.system_balance,
        "%.2f" % result.bank_balance,
        "%.2f" % result.difference,
        result.match_status.value,
        result.generated_at.strftime(GENERATED_FORMAT),
    ]


def render_csv(result: ReconciliationResult) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    writer.writerow(export_row(result))
    return buffer.getvalue()


def render_tab_separated(result: ReconciliationResult) -> str:
    # Tabs and newlines inside a name would shift columns
    cells = [cell.replace("\t", " ").replace("\n", " ") for cell in export_row(result)]
    return "\t".join(EXPORT_COLUMNS) + "\n" + "\t".join(cells) + "\n"


def render_html_report(result: ReconciliationResult) -> str:
    row = dict(zip(EXPORT_COLUMNS, export_row(result)))
    money_columns = EXPORT_COLUMNS[2:8]

    lines = [
        "<html><head><meta charset=\"utf-8\"><title>Reconciliation Report</title></head><body>",
        "<h1>Client Reconciliation Report</h1>",
        f"<p>Period: {html.escape(result.period)}</p>",
        "<table border='1' style='border-collapse: collapse;'>",
        "<tr><th>Field</th><th>Value</th></tr>",
    ]
    for column in EXPORT_COLUMNS:
        value = row[column]
        if column in money_columns:
            value = f"${value}"
        lines.append(f"<tr><td>{column}</td><td>{html.escape(value)}</td></tr>")
    lines.append("</table>")
    lines.append("</body></html>")
    return "\n".join(lines) + "\n"


@dataclass
class ExportConfig:
    """
    Configuration for an export format.
    """
    export_format: ExportFormat
    media_type: str
    extension: str
    renderer: Callable[[ReconciliationResult], str]
    audit_action: str

    def filename(self, result: ReconciliationResult) -> str:
        stamp = result.generated_at.strftime(FILENAME_STAMP_FORMAT)
        client = (result.client_name or "all").replace(" ", "_").replace('"', "")
        return f"reconciliation_{client}_{stamp}.{self.extension}"

    def render(self, result: ReconciliationResult) -> str:
        return self.renderer(result)


class ExportRegistry:
    """
    Registry of reconciliation export formats.
    """

    def __init__(self):
        self._configs: Dict[ExportFormat, ExportConfig] = {}
        self._register_defaults()

    def _register_defaults(self):
        self.register(ExportConfig(
            export_format=ExportFormat.CSV,
            media_type="text/csv",
            extension="csv",
            renderer=render_csv,
            audit_action="EXPORT_RECONCILIATION_CSV",
        ))
        self.register(ExportConfig(
            export_format=ExportFormat.EXCEL,
            media_type="application/vnd.ms-excel",
            extension="xls",
            renderer=render_tab_separated,
            audit_action="EXPORT_RECONCILIATION_EXCEL",
        ))
        self.register(ExportConfig(
            export_format=ExportFormat.PDF,
            media_type="text/html",
            extension="html",
            renderer=render_html_report,
            audit_action="EXPORT_RECONCILIATION_PDF",
        ))

    def register(self, config: ExportConfig):
        self._configs[config.export_format] = config

    def get_config(self, export_format: ExportFormat) -> ExportConfig:
        return self._configs[export_format]

    def list_formats(self) -> List[str]:
        return [f.value for f in self._configs]


export_registry = ExportRegistry()
