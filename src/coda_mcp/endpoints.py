"""Tool-to-endpoint translation table for the Coda REST API.

Each builder turns a validated argument model into exactly one
``OutboundRequest``. Builders are pure: no I/O, no defaults beyond what
the argument models already applied.
"""

from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, Field

from coda_mcp.models import (
    AddRowArgs,
    AddRowsArgs,
    CreateDocArgs,
    DocIdArgs,
    GetColumnArgs,
    GetControlArgs,
    GetFormulaArgs,
    GetPageArgs,
    GetRowsArgs,
    ListDocsArgs,
    RowArgs,
    SearchDocsArgs,
    TableArgs,
    UpdateRowArgs,
)


class OutboundRequest(BaseModel):
    """A single HTTP request against the Coda API, relative to the base URL."""

    method: str
    path: str
    params: tuple[tuple[str, str], ...] = ()
    json_body: dict[str, Any] | None = None
    write: bool = Field(
        default=False,
        description="Write endpoints acknowledge with 202 and an optional body",
    )

    model_config = {"frozen": True}


def _seg(value: str) -> str:
    """Percent-encode one path segment (identifiers may be names with spaces or slashes)."""
    return quote(value, safe="")


def _doc_path(doc_id: str) -> str:
    return f"/docs/{_seg(doc_id)}"


def _table_path(doc_id: str, table_id: str) -> str:
    return f"{_doc_path(doc_id)}/tables/{_seg(table_id)}"


def _cells(values: dict[str, Any]) -> list[dict[str, Any]]:
    """Convert a column -> value mapping into Coda's cell list."""
    return [{"column": column, "value": value} for column, value in values.items()]


# ==================== Account ====================


def whoami() -> OutboundRequest:
    return OutboundRequest(method="GET", path="/whoami")


# ==================== Docs ====================


def list_docs(args: ListDocsArgs) -> OutboundRequest:
    params: list[tuple[str, str]] = [("limit", str(args.limit))]
    if args.query:
        params.append(("query", args.query))
    if args.page_token:
        params.append(("pageToken", args.page_token))
    return OutboundRequest(method="GET", path="/docs", params=tuple(params))


def get_doc(args: DocIdArgs) -> OutboundRequest:
    return OutboundRequest(method="GET", path=_doc_path(args.doc_id))


def search_docs(args: SearchDocsArgs) -> OutboundRequest:
    return OutboundRequest(method="GET", path="/docs", params=(("query", args.query),))


def create_doc(args: CreateDocArgs) -> OutboundRequest:
    body: dict[str, Any] = {"title": args.title}
    if args.folder_id:
        body["folderId"] = args.folder_id
    if args.source_doc:
        body["sourceDoc"] = args.source_doc
    if args.timezone:
        body["timezone"] = args.timezone
    return OutboundRequest(method="POST", path="/docs", json_body=body, write=True)


def delete_doc(args: DocIdArgs) -> OutboundRequest:
    return OutboundRequest(method="DELETE", path=_doc_path(args.doc_id), write=True)


# ==================== Pages ====================


def list_pages(args: DocIdArgs) -> OutboundRequest:
    return OutboundRequest(method="GET", path=f"{_doc_path(args.doc_id)}/pages")


def start_page_export(args: GetPageArgs) -> OutboundRequest:
    # Starting an export is a read from the caller's view, but the API
    # answers 202 while it queues the job.
    return OutboundRequest(
        method="POST",
        path=f"{_doc_path(args.doc_id)}/pages/{_seg(args.page_id)}/export",
        json_body={"outputFormat": args.output_format},
        write=True,
    )


def page_export_status(doc_id: str, page_id: str, export_id: str) -> OutboundRequest:
    return OutboundRequest(
        method="GET",
        path=f"{_doc_path(doc_id)}/pages/{_seg(page_id)}/export/{_seg(export_id)}",
    )


# ==================== Tables & Columns ====================


def list_tables(args: DocIdArgs) -> OutboundRequest:
    return OutboundRequest(method="GET", path=f"{_doc_path(args.doc_id)}/tables")


def get_table(args: TableArgs) -> OutboundRequest:
    return OutboundRequest(method="GET", path=_table_path(args.doc_id, args.table_id))


def list_columns(args: TableArgs) -> OutboundRequest:
    return OutboundRequest(
        method="GET", path=f"{_table_path(args.doc_id, args.table_id)}/columns"
    )


def get_column(args: GetColumnArgs) -> OutboundRequest:
    return OutboundRequest(
        method="GET",
        path=f"{_table_path(args.doc_id, args.table_id)}/columns/{_seg(args.column_id)}",
    )


# ==================== Rows ====================


def get_rows(args: GetRowsArgs) -> OutboundRequest:
    """List rows keyed by column name.

    The filter expression is forwarded verbatim; Coda parses it.
    """
    params: list[tuple[str, str]] = [
        ("limit", str(args.limit)),
        ("useColumnNames", "true"),
    ]
    if args.query:
        params.append(("query", args.query))
    if args.page_token:
        params.append(("pageToken", args.page_token))
    return OutboundRequest(
        method="GET",
        path=f"{_table_path(args.doc_id, args.table_id)}/rows",
        params=tuple(params),
    )


def get_row(args: RowArgs) -> OutboundRequest:
    return OutboundRequest(
        method="GET",
        path=f"{_table_path(args.doc_id, args.table_id)}/rows/{_seg(args.row_id)}",
        params=(("useColumnNames", "true"),),
    )


def add_row(args: AddRowArgs) -> OutboundRequest:
    # Insert takes a list envelope, even for one row.
    return OutboundRequest(
        method="POST",
        path=f"{_table_path(args.doc_id, args.table_id)}/rows",
        json_body={"rows": [{"cells": _cells(args.cells)}]},
        write=True,
    )


def add_rows(args: AddRowsArgs) -> OutboundRequest:
    body: dict[str, Any] = {"rows": [{"cells": _cells(row)} for row in args.rows]}
    if args.key_columns:
        body["keyColumns"] = list(args.key_columns)
    return OutboundRequest(
        method="POST",
        path=f"{_table_path(args.doc_id, args.table_id)}/rows",
        json_body=body,
        write=True,
    )


def update_row(args: UpdateRowArgs) -> OutboundRequest:
    # Update takes a single row object, not a list.
    return OutboundRequest(
        method="PUT",
        path=f"{_table_path(args.doc_id, args.table_id)}/rows/{_seg(args.row_id)}",
        json_body={"row": {"cells": _cells(args.cells)}},
        write=True,
    )


def delete_row(args: RowArgs) -> OutboundRequest:
    return OutboundRequest(
        method="DELETE",
        path=f"{_table_path(args.doc_id, args.table_id)}/rows/{_seg(args.row_id)}",
        write=True,
    )


# ==================== Formulas & Controls ====================


def list_formulas(args: DocIdArgs) -> OutboundRequest:
    return OutboundRequest(method="GET", path=f"{_doc_path(args.doc_id)}/formulas")


def get_formula(args: GetFormulaArgs) -> OutboundRequest:
    return OutboundRequest(
        method="GET", path=f"{_doc_path(args.doc_id)}/formulas/{_seg(args.formula_id)}"
    )


def list_controls(args: DocIdArgs) -> OutboundRequest:
    return OutboundRequest(method="GET", path=f"{_doc_path(args.doc_id)}/controls")


def get_control(args: GetControlArgs) -> OutboundRequest:
    return OutboundRequest(
        method="GET", path=f"{_doc_path(args.doc_id)}/controls/{_seg(args.control_id)}"
    )
