"""InvocationDispatcher: routes a tool request through the payment gate to its handler.

Order of checks for one request:

1. resolve the tool id (unknown -> ToolNotFound, nothing else happens)
2. validate arguments against the tool's JSON Schema (before any payment)
3. free tools: run the handler
4. paid tools: run the PaymentGateway; the handler runs only after SETTLED
5. handler exceptions become HandlerError envelopes, never propagate
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, best_match

from tollgate.attempt import FailureReason, PaymentOutcome, utc_now
from tollgate.audit import AuditPhase, AuditSink, AuditWriteError
from tollgate.catalog import (
    CatalogError,
    ToolCatalog,
    ToolDescriptor,
    ToolNotFoundError,
    describe,
)
from tollgate.config import is_address
from tollgate.constants import ToolTier
from tollgate.envelope import InvocationEnvelope
from tollgate.gateway import PaymentGateway

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any], str], Awaitable[Any]]
"""``handler(arguments, principal) -> data``. The principal is the payer,
never the subject of a query (that comes from the arguments)."""


# ---------------------------------------------------------------------------
# ToolRegistry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RegisteredTool:
    tier: ToolTier
    handler: ToolHandler


class ToolRegistry:
    """Tool id -> (tier, handler). Adding a tool is one ``register`` call."""

    def __init__(self) -> None:
        self._entries: dict[str, RegisteredTool] = {}

    def register(self, tool_id: str, tier: ToolTier, handler: ToolHandler) -> None:
        if tool_id in self._entries:
            raise CatalogError(f"Handler for '{tool_id}' registered twice")
        self._entries[tool_id] = RegisteredTool(tier=tier, handler=handler)

    def tool(self, tool_id: str, tier: ToolTier) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of ``register``."""

        def decorator(fn: ToolHandler) -> ToolHandler:
            self.register(tool_id, tier, fn)
            return fn

        return decorator

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def resolve(self, catalog: ToolCatalog) -> dict[str, RegisteredTool]:
        """Match every catalog entry to exactly one handler of the same tier.

        Raises CatalogError on a missing handler, a handler with no catalog
        entry, or a tier mismatch.
        """
        catalog_ids = {t.id for t in catalog}
        missing = sorted(catalog_ids - self._entries.keys())
        extra = sorted(self._entries.keys() - catalog_ids)
        if missing:
            raise CatalogError(f"No handler registered for: {', '.join(missing)}")
        if extra:
            raise CatalogError(f"Handlers registered for unknown tools: {', '.join(extra)}")
        for tool in catalog:
            entry = self._entries[tool.id]
            if entry.tier is not tool.tier:
                raise CatalogError(
                    f"Tool '{tool.id}' is {tool.tier.value} in the catalog "
                    f"but registered as {entry.tier.value}"
                )
        return dict(self._entries)


# ---------------------------------------------------------------------------
# InvocationDispatcher
# ---------------------------------------------------------------------------


class InvocationDispatcher:
    """Single entry point for tool requests. ``invoke`` never raises."""

    def __init__(
        self,
        catalog: ToolCatalog,
        registry: ToolRegistry,
        gateway: PaymentGateway,
        sink: AuditSink,
        default_principal: str,
    ) -> None:
        self._catalog = catalog
        self._tools = registry.resolve(catalog)
        self._gateway = gateway
        self._sink = sink
        self._default_principal = default_principal
        self._validators: dict[str, Draft7Validator] = {}
        for tool in catalog:
            schema = dict(tool.input_schema)
            try:
                Draft7Validator.check_schema(schema)
            except SchemaError as e:
                raise CatalogError(f"Tool '{tool.id}': invalid input schema: {e.message}") from e
            self._validators[tool.id] = Draft7Validator(schema)

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    @property
    def sink(self) -> AuditSink:
        return self._sink

    def list_tools(self) -> list[dict[str, Any]]:
        """Listing for clients: name, badge-annotated description, input schema."""
        return [
            {
                "name": tool.id,
                "description": describe(tool),
                "inputSchema": dict(tool.input_schema),
            }
            for tool in self._catalog
        ]

    def _validate(self, tool: ToolDescriptor, args: Any) -> str | None:
        if not isinstance(args, Mapping):
            return f"arguments must be an object, got {type(args).__name__}"
        error = best_match(self._validators[tool.id].iter_errors(dict(args)))
        if error is None:
            return None
        where = "/".join(str(p) for p in error.absolute_path)
        return f"{where}: {error.message}" if where else error.message

    async def invoke(
        self,
        tool_id: str,
        args: Mapping[str, Any] | None = None,
        principal: str | None = None,
    ) -> InvocationEnvelope:
        try:
            tool = self._catalog.lookup(tool_id)
        except ToolNotFoundError as e:
            logger.info("Unknown tool requested: %s", tool_id)
            return InvocationEnvelope.failure(tool_id, FailureReason.TOOL_NOT_FOUND, str(e))

        arguments = {} if args is None else args
        problem = self._validate(tool, arguments)
        if problem is None and principal is not None and not is_address(principal):
            problem = f"principal is not an address: {principal!r}"
        if problem is not None:
            logger.info("Rejected %s: invalid arguments (%s)", tool.id, problem)
            return InvocationEnvelope.failure(
                tool.id, FailureReason.VALIDATION_ERROR,
                f"Invalid arguments for '{tool.id}'",
                tier=tool.tier, detail=problem,
            )

        payer = principal or self._default_principal
        arguments = dict(arguments)

        if not tool.is_paid:
            return await self._execute(tool, arguments, payer, receipt=None)

        outcome = await self._gateway.run(tool.id, payer)
        if not outcome.success:
            return InvocationEnvelope.from_outcome(tool.id, tool.tier, outcome)
        return await self._execute(tool, arguments, payer, receipt=outcome)

    async def _execute(
        self,
        tool: ToolDescriptor,
        arguments: dict[str, Any],
        payer: str,
        receipt: PaymentOutcome | None,
    ) -> InvocationEnvelope:
        started_at = utc_now()
        handler = self._tools[tool.id].handler
        try:
            data = await handler(arguments, payer)
        except Exception as e:
            logger.exception("Handler for %s failed", tool.id)
            if receipt is not None:
                logger.error(
                    "Charged call failed: attempt %s (tx %s) for %s",
                    receipt.attempt_id, receipt.transaction_reference, tool.id,
                )
                await self._record_handler_result(receipt, tool, payer, started_at, error=str(e))
            return InvocationEnvelope.failure(
                tool.id, FailureReason.HANDLER_ERROR,
                f"Tool '{tool.id}' failed: {e}",
                tier=tool.tier,
                payment_receipt=receipt,
                detail=str(e),
                charged=receipt is not None,
            )

        if receipt is not None:
            await self._record_handler_result(receipt, tool, payer, started_at)
        return InvocationEnvelope.ok(tool.id, tool.tier, data, receipt=receipt)

    async def _record_handler_result(
        self,
        receipt: PaymentOutcome,
        tool: ToolDescriptor,
        payer: str,
        started_at: str,
        error: str | None = None,
    ) -> None:
        fields: dict[str, Any] = {
            "attempt_id": receipt.attempt_id,
            "tool_id": tool.id,
            "principal": payer,
            "transaction_reference": receipt.transaction_reference,
            "execution_started_at": started_at,
            "charged": True,
        }
        if error is not None:
            fields["detail"] = error
        try:
            await self._sink.record(
                AuditPhase.HANDLER_RESULT, "error" if error is not None else "ok", **fields,
            )
        except AuditWriteError:
            # The payment itself is already on record.
            logger.error("Could not audit handler result for attempt %s", receipt.attempt_id)
