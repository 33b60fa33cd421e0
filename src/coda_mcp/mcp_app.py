"""MCP application with tools and resources for the Coda REST API.

This module defines the MCP server with all tools and resources,
intended to be reused by both stdio and HTTP transport entrypoints.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import BaseModel, ValidationError

from coda_mcp import endpoints
from coda_mcp.client import CodaClient
from coda_mcp.config import Settings
from coda_mcp.errors import CodaError, InvalidParameterError, MalformedResponseError
from coda_mcp.export import PageExporter
from coda_mcp.models import (
    AddRowArgs,
    AddRowsArgs,
    Column,
    Control,
    CreateDocArgs,
    Doc,
    DocIdArgs,
    EmptyArgs,
    Formula,
    GetColumnArgs,
    GetControlArgs,
    GetFormulaArgs,
    GetPageArgs,
    GetRowsArgs,
    ItemList,
    ListDocsArgs,
    Row,
    RowArgs,
    RowMutationResponse,
    SearchDocsArgs,
    Table,
    TableArgs,
    ToolArgs,
    ToolResult,
    UpdateRowArgs,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

WRITE_NOTE = "Note: Changes may take a few seconds to appear."

QUERY_SYNTAX_URI = "coda://query-syntax"
QUERY_SYNTAX_TEXT = """\
Row filters for get_rows use Coda's formula filter syntax and are sent to
Coda unchanged as the `query` parameter.

  ColumnName:"value"     rows whose ColumnName equals "value"
  "Column Name":"value"  quote column names that contain spaces
  ColumnName:42          numbers and booleans are written bare

Column IDs (c-xxxx) may be used in place of names. Only one column can be
matched per query; combine results client-side for more complex filters.
"""


def create_mcp_server(name: str = "coda_mcp") -> Server:
    """Create and configure the MCP server.

    Args:
        name: Server name for identification.

    Returns:
        Configured MCP Server instance.
    """
    return Server(name)


def format_result(result: ToolResult) -> list[TextContent]:
    """Format a ToolResult as MCP TextContent.

    Args:
        result: The tool result to format.

    Returns:
        List containing a single TextContent with JSON data.
    """
    return [
        TextContent(
            type="text",
            text=json.dumps(result.model_dump(exclude_none=True), indent=2, default=str),
        )
    ]


def format_json_response(data: Any) -> list[TextContent]:
    """Format raw data as MCP TextContent.

    Args:
        data: The data to format as JSON.

    Returns:
        List containing a single TextContent with JSON data.
    """
    return [
        TextContent(
            type="text",
            text=json.dumps(data, indent=2, default=str),
        )
    ]


def format_error(error: CodaError | str) -> list[TextContent]:
    """Format an error as MCP TextContent.

    Args:
        error: A gateway error, or a plain message.

    Returns:
        List containing a single TextContent with error JSON.
    """
    if isinstance(error, CodaError):
        details = error.to_dict()
        return format_result(
            ToolResult.fail(
                str(error),
                error_type=details.pop("error_type"),
                retryable=details.pop("retryable"),
                details={k: v for k, v in details.items() if k != "message"} or None,
            )
        )
    return format_result(ToolResult.fail(error))


def _decode(model: type[ModelT], payload: Any) -> ModelT:
    """Validate a success payload against its response model."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponseError(
            f"Unexpected {model.__name__} payload: {e.errors()[0]['msg']}"
        ) from e


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def _fenced(data: Any) -> str:
    return f"```json\n{json.dumps(data, indent=2, default=str)}\n```"


def format_item_list(payload: Any, noun: str, summary: str | None = None) -> list[TextContent]:
    """Format a Coda list envelope as a count summary plus JSON items.

    Args:
        payload: Response body from a list endpoint.
        noun: Plural noun for the summary line, e.g. "documents".
        summary: Optional summary override.

    Returns:
        Formatted TextContent list.
    """
    listing = _decode(ItemList, payload)
    lines = [summary or f"Found {len(listing.items)} {noun}"]
    if listing.next_page_token:
        lines.append(f"More results available; pass page_token={listing.next_page_token!r}")
    lines.append("")
    lines.append(_fenced(listing.items))
    return _text("\n".join(lines))


def format_item(payload: Any, heading: str) -> list[TextContent]:
    """Format a single resource with a heading line."""
    return _text(f"{heading}\n\n{_fenced(payload)}")


def format_row_mutation(payload: Any, action: str) -> list[TextContent]:
    """Format the acknowledgement of a queued row write."""
    result = _decode(RowMutationResponse, payload)
    lines = [f"{action} successfully."]
    if result.request_id:
        lines.append(f"Request ID: {result.request_id}")
    if result.added_row_ids:
        lines.append(f"Added row IDs: {', '.join(result.added_row_ids)}")
    lines.append("")
    lines.append(WRITE_NOTE)
    return _text("\n".join(lines))


def parse_args(model: type[ToolArgs], arguments: dict[str, Any] | None) -> Any:
    """Validate raw tool arguments into an argument model.

    Raises:
        InvalidParameterError: Naming the first offending parameter.
    """
    try:
        return model.model_validate(arguments or {})
    except ValidationError as e:
        first = e.errors()[0]
        parameter = ".".join(str(part) for part in first["loc"]) or "arguments"
        raise InvalidParameterError(parameter, first["msg"]) from e


# ==================== Tool Handlers ====================


class ToolGateway:
    """Runs tool calls against the Coda API.

    Holds no per-call state: concurrent calls share only the client.
    """

    def __init__(
        self,
        client: CodaClient,
        exporter_factory: Callable[[CodaClient], PageExporter] = PageExporter,
    ) -> None:
        self.client = client
        self._exporter_factory = exporter_factory

    def exporter(self) -> PageExporter:
        return self._exporter_factory(self.client)

    async def call(self, name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        """Validate, dispatch and format one tool call.

        Errors never escape: they are returned as a failed ToolResult.

        Args:
            name: The tool name to call.
            arguments: Tool arguments.

        Returns:
            List of TextContent with the result.
        """
        logger.info("Tool called: %s", name)

        tool = TOOLS.get(name)
        if tool is None:
            logger.warning("Unknown tool requested: %s", name)
            return format_error(InvalidParameterError("name", f"Unknown tool: {name}"))

        try:
            args = parse_args(tool.args_model, arguments)
            return await tool.handler(self, args)
        except CodaError as e:
            error_msg = str(e)
            if e.request_id:
                error_msg += f" (request_id: {e.request_id})"
            logger.error("Tool %s failed [%s]: %s", name, e.error_type, error_msg)
            return format_error(e)
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return format_error(f"Internal error: {e}")


Handler = Callable[[ToolGateway, Any], Awaitable[list[TextContent]]]


async def _whoami(gw: ToolGateway, args: EmptyArgs) -> list[TextContent]:
    result = await gw.client.send(endpoints.whoami())
    return format_json_response(result)


async def _list_docs(gw: ToolGateway, args: ListDocsArgs) -> list[TextContent]:
    logger.info("list_docs: limit=%d, query=%r", args.limit, args.query)
    return format_item_list(await gw.client.send(endpoints.list_docs(args)), "documents")


async def _get_doc(gw: ToolGateway, args: DocIdArgs) -> list[TextContent]:
    payload = await gw.client.send(endpoints.get_doc(args))
    return format_item(payload, f"Document: {_decode(Doc, payload).name}")


async def _search_docs(gw: ToolGateway, args: SearchDocsArgs) -> list[TextContent]:
    payload = await gw.client.send(endpoints.search_docs(args))
    count = len(_decode(ItemList, payload).items)
    return format_item_list(
        payload, "documents", summary=f"Found {count} documents matching '{args.query}'"
    )


async def _create_doc(gw: ToolGateway, args: CreateDocArgs) -> list[TextContent]:
    payload = await gw.client.send(endpoints.create_doc(args))
    doc = _decode(Doc, payload)
    return format_item(
        payload, f"Document created successfully!\n\nName: {doc.name}\nID: {doc.id}"
    )


async def _delete_doc(gw: ToolGateway, args: DocIdArgs) -> list[TextContent]:
    await gw.client.send(endpoints.delete_doc(args))
    return _text(f"Document '{args.doc_id}' deleted successfully.")


async def _list_pages(gw: ToolGateway, args: DocIdArgs) -> list[TextContent]:
    return format_item_list(await gw.client.send(endpoints.list_pages(args)), "pages")


async def _get_page(gw: ToolGateway, args: GetPageArgs) -> list[TextContent]:
    job, content = await gw.exporter().run(args)
    return _text(f"Page: {job.page_id} ({job.output_format})\n\nContent:\n{content}")


async def _list_tables(gw: ToolGateway, args: DocIdArgs) -> list[TextContent]:
    return format_item_list(await gw.client.send(endpoints.list_tables(args)), "tables")


async def _get_table(gw: ToolGateway, args: TableArgs) -> list[TextContent]:
    payload = await gw.client.send(endpoints.get_table(args))
    return format_item(payload, f"Table: {_decode(Table, payload).name}")


async def _list_columns(gw: ToolGateway, args: TableArgs) -> list[TextContent]:
    return format_item_list(await gw.client.send(endpoints.list_columns(args)), "columns")


async def _get_column(gw: ToolGateway, args: GetColumnArgs) -> list[TextContent]:
    payload = await gw.client.send(endpoints.get_column(args))
    return format_item(payload, f"Column: {_decode(Column, payload).name}")


async def _get_rows(gw: ToolGateway, args: GetRowsArgs) -> list[TextContent]:
    logger.info("get_rows: table=%s, limit=%d, query=%r", args.table_id, args.limit, args.query)
    return format_item_list(await gw.client.send(endpoints.get_rows(args)), "rows")


async def _get_row(gw: ToolGateway, args: RowArgs) -> list[TextContent]:
    payload = await gw.client.send(endpoints.get_row(args))
    return format_item(payload, f"Row: {_decode(Row, payload).id}")


async def _add_row(gw: ToolGateway, args: AddRowArgs) -> list[TextContent]:
    return format_row_mutation(await gw.client.send(endpoints.add_row(args)), "Row added")


async def _add_rows(gw: ToolGateway, args: AddRowsArgs) -> list[TextContent]:
    action = "Rows upserted" if args.key_columns else f"{len(args.rows)} row(s) added"
    return format_row_mutation(await gw.client.send(endpoints.add_rows(args)), action)


async def _update_row(gw: ToolGateway, args: UpdateRowArgs) -> list[TextContent]:
    return format_row_mutation(await gw.client.send(endpoints.update_row(args)), "Row updated")


async def _delete_row(gw: ToolGateway, args: RowArgs) -> list[TextContent]:
    return format_row_mutation(await gw.client.send(endpoints.delete_row(args)), "Row deleted")


async def _list_formulas(gw: ToolGateway, args: DocIdArgs) -> list[TextContent]:
    return format_item_list(await gw.client.send(endpoints.list_formulas(args)), "formulas")


async def _get_formula(gw: ToolGateway, args: GetFormulaArgs) -> list[TextContent]:
    payload = await gw.client.send(endpoints.get_formula(args))
    return format_item(payload, f"Formula: {_decode(Formula, payload).name}")


async def _list_controls(gw: ToolGateway, args: DocIdArgs) -> list[TextContent]:
    return format_item_list(await gw.client.send(endpoints.list_controls(args)), "controls")


async def _get_control(gw: ToolGateway, args: GetControlArgs) -> list[TextContent]:
    payload = await gw.client.send(endpoints.get_control(args))
    return format_item(payload, f"Control: {_decode(Control, payload).name}")


@dataclass(frozen=True)
class ToolDefinition:
    """One entry of the tool catalog."""

    name: str
    description: str
    args_model: type[BaseModel]
    handler: Handler

    def to_tool(self) -> Tool:
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.args_model.model_json_schema(),
        )


TOOL_DEFINITIONS: tuple[ToolDefinition, ...] = (
    # ==================== Account ====================
    ToolDefinition(
        "whoami",
        "Get information about the Coda user that owns the configured API token.",
        EmptyArgs,
        _whoami,
    ),
    # ==================== Documents ====================
    ToolDefinition(
        "list_docs",
        "List available Coda documents. Returns doc IDs, names, and metadata.",
        ListDocsArgs,
        _list_docs,
    ),
    ToolDefinition(
        "get_doc",
        "Get detailed information about a specific Coda document.",
        DocIdArgs,
        _get_doc,
    ),
    ToolDefinition(
        "search_docs",
        "Search for Coda documents by name or content.",
        SearchDocsArgs,
        _search_docs,
    ),
    ToolDefinition(
        "create_doc",
        "Create a new Coda document. Optionally specify a folder, source document (template), or timezone.",
        CreateDocArgs,
        _create_doc,
    ),
    ToolDefinition(
        "delete_doc",
        "Delete a Coda document. This action is permanent and cannot be undone.",
        DocIdArgs,
        _delete_doc,
    ),
    # ==================== Pages ====================
    ToolDefinition(
        "list_pages",
        "List all pages in a Coda document.",
        DocIdArgs,
        _list_pages,
    ),
    ToolDefinition(
        "get_page",
        "Get a page's content as HTML or Markdown. Runs an export on Coda and may take up to 30 seconds.",
        GetPageArgs,
        _get_page,
    ),
    # ==================== Tables & Columns ====================
    ToolDefinition(
        "list_tables",
        "List all tables in a Coda document.",
        DocIdArgs,
        _list_tables,
    ),
    ToolDefinition(
        "get_table",
        "Get detailed information about a specific table.",
        TableArgs,
        _get_table,
    ),
    ToolDefinition(
        "list_columns",
        "List all columns in a table.",
        TableArgs,
        _list_columns,
    ),
    ToolDefinition(
        "get_column",
        "Get details of a specific column, including its format.",
        GetColumnArgs,
        _get_column,
    ),
    # ==================== Rows ====================
    ToolDefinition(
        "get_rows",
        "Get rows from a table with optional filtering. Returns rows with column values using column names as keys. "
        f"See the {QUERY_SYNTAX_URI} resource for filter syntax.",
        GetRowsArgs,
        _get_rows,
    ),
    ToolDefinition(
        "get_row",
        "Get a specific row by ID.",
        RowArgs,
        _get_row,
    ),
    ToolDefinition(
        "add_row",
        "Add a new row to a table. Cells should be a dictionary mapping column names to values.",
        AddRowArgs,
        _add_row,
    ),
    ToolDefinition(
        "add_rows",
        "Add several rows to a table in one request. With key_columns, rows matching on those columns are updated instead (upsert).",
        AddRowsArgs,
        _add_rows,
    ),
    ToolDefinition(
        "update_row",
        "Update an existing row in a table.",
        UpdateRowArgs,
        _update_row,
    ),
    ToolDefinition(
        "delete_row",
        "Delete a row from a table.",
        RowArgs,
        _delete_row,
    ),
    # ==================== Formulas & Controls ====================
    ToolDefinition(
        "list_formulas",
        "List all named formulas in a document.",
        DocIdArgs,
        _list_formulas,
    ),
    ToolDefinition(
        "get_formula",
        "Get a specific formula's current value.",
        GetFormulaArgs,
        _get_formula,
    ),
    ToolDefinition(
        "list_controls",
        "List all controls (buttons, sliders, etc.) in a document.",
        DocIdArgs,
        _list_controls,
    ),
    ToolDefinition(
        "get_control",
        "Get a specific control and its current value.",
        GetControlArgs,
        _get_control,
    ),
)

TOOLS: dict[str, ToolDefinition] = {tool.name: tool for tool in TOOL_DEFINITIONS}


def register_tools(server: Server, gateway: ToolGateway) -> None:
    """Register all MCP tools on the server.

    Args:
        server: The MCP server to register tools on.
        gateway: The gateway that executes tool calls.
    """

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return [tool.to_tool() for tool in TOOL_DEFINITIONS]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle tool calls."""
        return await gateway.call(name, arguments)


def register_resources(server: Server) -> None:
    """Register all MCP resources on the server.

    Args:
        server: The MCP server to register resources on.
    """

    @server.list_resources()
    async def list_resources() -> list[Resource]:
        """List available resources."""
        return [
            Resource(
                uri=QUERY_SYNTAX_URI,
                name="Coda row filter syntax",
                description="How to write the query parameter for get_rows",
                mimeType="text/plain",
            ),
        ]

    @server.read_resource()
    async def read_resource(uri: Any) -> str:
        """Read a resource by URI.

        Args:
            uri: The resource URI to read.

        Returns:
            Resource content as text.
        """
        if str(uri) == QUERY_SYNTAX_URI:
            return QUERY_SYNTAX_TEXT
        raise ValueError(f"Unknown resource URI: {uri}")


def setup_mcp_app(server: Server, settings: Settings, client: CodaClient) -> ToolGateway:
    """Set up the complete MCP application.

    Args:
        server: The MCP server to configure.
        settings: Application settings.
        client: The Coda client for API calls.

    Returns:
        The gateway wired into the server.
    """
    gateway = ToolGateway(client)
    register_tools(server, gateway)
    register_resources(server)
    logger.info("MCP server configured for %s", settings.base_url)
    return gateway
