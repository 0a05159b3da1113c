"""
CSV export helpers for reports.
"""
import csv
import io
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from fastapi import Response


def format_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def create_csv_response(data: List[Dict[str, Any]], filename: str, headers: Dict[str, str]) -> Response:
    """
    CSV download from a list of dicts.

    Args:
        data: Report rows
        filename: Name of the downloaded file
        headers: Field name to column title, in column order
    """
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers.values())
    for row in data:
        writer.writerow([format_csv_value(row.get(field)) for field in headers])

    content = output.getvalue()
    output.close()
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


MONTHLY_HEADERS = {
    "month": "Month",
    "revenue": "Revenue",
    "invoiced": "Invoiced",
    "expenses": "Expenses",
    "profit": "Profit",
}

CLIENT_HEADERS = {
    "client_name": "Client",
    "invoice_count": "Invoices",
    "invoiced": "Invoiced",
    "revenue": "Revenue",
}
