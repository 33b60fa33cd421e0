"""Pydantic models for MCP tool arguments and Coda API responses.

Argument models are strict about identifiers and limits so bad input is
rejected before a request is built. Response models are intentionally
permissive to tolerate fields the API adds over time.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from coda_mcp.validation import clamp_limit, require_identifier

DEFAULT_DOCS_LIMIT = 50
DEFAULT_ROWS_LIMIT = 100

IDENTIFIER_FIELDS = (
    "doc_id",
    "page_id",
    "table_id",
    "row_id",
    "column_id",
    "formula_id",
    "control_id",
)


class ToolArgs(BaseModel):
    """Base class for tool arguments.

    Instances are frozen: a tool call does not change once validated.
    """

    model_config = {"frozen": True}

    @field_validator(*IDENTIFIER_FIELDS, mode="before", check_fields=False)
    @classmethod
    def _require_identifier(cls, value: Any, info: Any) -> str:
        return require_identifier(value, info.field_name)


class EmptyArgs(ToolArgs):
    """Arguments for tools that take no parameters."""


# ==================== Document Args ====================


class ListDocsArgs(ToolArgs):
    """Arguments for list_docs."""

    limit: int | None = Field(
        default=None,
        validate_default=True,
        description=f"Maximum number of docs to return (default: {DEFAULT_DOCS_LIMIT}, max: 1000)",
    )
    query: str | None = Field(
        default=None,
        description="Search query to filter docs by name",
    )
    page_token: str | None = Field(
        default=None,
        description="Continuation token from a previous response's nextPageToken",
    )

    @field_validator("limit")
    @classmethod
    def _clamp(cls, value: int | None) -> int:
        return clamp_limit(value, DEFAULT_DOCS_LIMIT)


class DocIdArgs(ToolArgs):
    """Arguments for doc-scoped tools (get_doc, delete_doc, list_pages, ...)."""

    doc_id: str = Field(..., description="The document ID")


class SearchDocsArgs(ToolArgs):
    """Arguments for search_docs."""

    query: str = Field(..., description="Search query")

    @field_validator("query", mode="before")
    @classmethod
    def _require_query(cls, value: Any) -> str:
        return require_identifier(value, "query")


class CreateDocArgs(ToolArgs):
    """Arguments for create_doc."""

    title: str = Field(..., description="Title of the new document")
    folder_id: str | None = Field(
        default=None,
        description="ID of the folder to create the doc in",
    )
    source_doc: str | None = Field(
        default=None,
        description="ID of a doc to copy (use as a template)",
    )
    timezone: str | None = Field(
        default=None,
        description="Timezone for the doc, e.g. 'America/Los_Angeles'",
    )

    @field_validator("title", mode="before")
    @classmethod
    def _require_title(cls, value: Any) -> str:
        return require_identifier(value, "title")


# ==================== Page Args ====================


class GetPageArgs(ToolArgs):
    """Arguments for get_page."""

    doc_id: str = Field(..., description="The document ID")
    page_id: str = Field(..., description="The page ID or name")
    output_format: Literal["html", "markdown"] = Field(
        default="html",
        description="Export format for the page content: 'html' or 'markdown'",
    )


# ==================== Table & Column Args ====================


class TableArgs(ToolArgs):
    """Arguments for table-scoped tools (get_table, list_columns)."""

    doc_id: str = Field(..., description="The document ID")
    table_id: str = Field(..., description="The table ID or name")


class GetColumnArgs(ToolArgs):
    """Arguments for get_column."""

    doc_id: str = Field(..., description="The document ID")
    table_id: str = Field(..., description="The table ID or name")
    column_id: str = Field(..., description="The column ID or name")


# ==================== Row Args ====================


class GetRowsArgs(ToolArgs):
    """Arguments for get_rows."""

    doc_id: str = Field(..., description="The document ID")
    table_id: str = Field(..., description="The table ID or name")
    limit: int | None = Field(
        default=None,
        validate_default=True,
        description=f"Maximum rows to return (default: {DEFAULT_ROWS_LIMIT}, max: 1000)",
    )
    query: str | None = Field(
        default=None,
        description='Row filter in Coda formula syntax, e.g. Status:"Active"',
    )
    page_token: str | None = Field(
        default=None,
        description="Continuation token from a previous response's nextPageToken",
    )

    @field_validator("limit")
    @classmethod
    def _clamp(cls, value: int | None) -> int:
        return clamp_limit(value, DEFAULT_ROWS_LIMIT)


class RowArgs(ToolArgs):
    """Arguments for get_row and delete_row."""

    doc_id: str = Field(..., description="The document ID")
    table_id: str = Field(..., description="The table ID or name")
    row_id: str = Field(..., description="The row ID or name")


class AddRowArgs(ToolArgs):
    """Arguments for add_row."""

    doc_id: str = Field(..., description="The document ID")
    table_id: str = Field(..., description="The table ID or name")
    cells: dict[str, Any] = Field(
        ...,
        description="Cell values as key-value pairs (column name -> value)",
    )


class AddRowsArgs(ToolArgs):
    """Arguments for add_rows (bulk insert or upsert)."""

    doc_id: str = Field(..., description="The document ID")
    table_id: str = Field(..., description="The table ID or name")
    rows: list[dict[str, Any]] = Field(
        ...,
        min_length=1,
        description="List of rows, each a mapping of column name -> value",
    )
    key_columns: list[str] | None = Field(
        default=None,
        description="Column names used to match existing rows; matching rows are updated instead of inserted",
    )


class UpdateRowArgs(ToolArgs):
    """Arguments for update_row."""

    doc_id: str = Field(..., description="The document ID")
    table_id: str = Field(..., description="The table ID or name")
    row_id: str = Field(..., description="The row ID to update")
    cells: dict[str, Any] = Field(
        ...,
        min_length=1,
        description="Cell values to update (column name -> value)",
    )


# ==================== Formula & Control Args ====================


class GetFormulaArgs(ToolArgs):
    """Arguments for get_formula."""

    doc_id: str = Field(..., description="The document ID")
    formula_id: str = Field(..., description="The formula ID or name")


class GetControlArgs(ToolArgs):
    """Arguments for get_control."""

    doc_id: str = Field(..., description="The document ID")
    control_id: str = Field(..., description="The control ID or name")


# ==================== Response Models ====================


class Doc(BaseModel):
    """Coda document metadata."""

    id: str
    name: str = ""
    href: str | None = None
    owner: str | None = None
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")
    folder_id: str | None = Field(default=None, alias="folderId")

    model_config = {"populate_by_name": True, "extra": "allow"}


class Table(BaseModel):
    """Coda table metadata."""

    id: str
    name: str = ""
    href: str | None = None
    row_count: int | None = Field(default=None, alias="rowCount")

    model_config = {"populate_by_name": True, "extra": "allow"}


class ColumnFormat(BaseModel):
    """Column format descriptor."""

    format_type: str | None = Field(default=None, alias="type")

    model_config = {"populate_by_name": True, "extra": "allow"}


class Column(BaseModel):
    """Coda table column."""

    id: str
    name: str = ""
    href: str | None = None
    format: ColumnFormat | None = None

    model_config = {"populate_by_name": True, "extra": "allow"}


class Row(BaseModel):
    """Coda table row, values keyed by column name."""

    id: str
    name: str | None = None
    href: str | None = None
    index: int | None = None
    values: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "allow"}


class Formula(BaseModel):
    """Named formula and its current value."""

    id: str
    name: str = ""
    href: str | None = None
    value: Any = None

    model_config = {"populate_by_name": True, "extra": "allow"}


class Control(BaseModel):
    """Canvas control (button, slider, ...)."""

    id: str
    name: str = ""
    href: str | None = None
    control_type: str | None = Field(default=None, alias="controlType")
    value: Any = None

    model_config = {"populate_by_name": True, "extra": "allow"}


class ItemList(BaseModel):
    """Paginated list envelope returned by Coda list endpoints."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    next_page_token: str | None = Field(default=None, alias="nextPageToken")

    model_config = {"populate_by_name": True, "extra": "allow"}


class RowMutationResponse(BaseModel):
    """Acknowledgement of a queued row write."""

    request_id: str | None = Field(default=None, alias="requestId")
    added_row_ids: list[str] | None = Field(default=None, alias="addedRowIds")
    id: str | None = None

    model_config = {"populate_by_name": True, "extra": "allow"}


class ExportStatus(BaseModel):
    """Page export job status as reported by the API."""

    id: str
    status: str
    href: str | None = None
    download_link: str | None = Field(default=None, alias="downloadLink")
    error: str | None = None

    model_config = {"populate_by_name": True, "extra": "allow"}


class ExportState(str, Enum):
    """Lifecycle of a page export job."""

    INITIATING = "initiating"
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class ToolResult(BaseModel):
    """Standard result wrapper for tool responses."""

    success: bool = Field(
        default=True,
        description="Whether the tool execution succeeded",
    )
    data: Any = Field(
        default=None,
        description="The result data from the tool",
    )
    error: str | None = Field(
        default=None,
        description="Error message if success is False",
    )
    error_type: str | None = Field(
        default=None,
        description="Error category, e.g. 'validation', 'rate_limited', 'export_timeout'",
    )
    retryable: bool | None = Field(
        default=None,
        description="Whether retrying the same call later may succeed",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Structured error details (status code, backend message, request id)",
    )

    @classmethod
    def fail(
        cls,
        error: str,
        error_type: str | None = None,
        retryable: bool | None = None,
        details: dict[str, Any] | None = None,
    ) -> "ToolResult":
        """Create a failed result.

        Args:
            error: Error message.
            error_type: Optional error category.
            retryable: Optional retry hint for the caller.
            details: Optional structured details.

        Returns:
            ToolResult with success=False.
        """
        return cls(
            success=False,
            error=error,
            error_type=error_type,
            retryable=retryable,
            details=details,
        )
