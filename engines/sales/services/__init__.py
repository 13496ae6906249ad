"""
SBO Sales Engine — Application Service
=========================================
Executes accepted sales commands.

Flow per command:
    1. Scope guard + sales policies
    2. Build the resulting resource state (recalculating totals where
       lines, adjustments, methods, currency or payments changed)
    3. Persist the state-changed event
    4. Accepted → apply to the projection, log before/after snapshots
       under an undo token, broadcast totals_calculated

Calculation errors surface as ValueError subclasses before anything
is persisted.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from decimal import Decimal
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from core.commands.base import Command
from core.commands.bus import is_persist_accepted
from core.commands.rejection import RejectionReason
from core.commands.undo import (
    ActionLogEntry,
    InMemoryActionLog,
    Snapshot,
    create_action_log_entry,
)
from core.context.scope import enforce_scope_guard
from engines.sales.calculation import (
    AdjustmentDraft,
    CalculationResult,
    ExistingTotals,
    LineDraft,
    SalesCalculationService,
    TaxRate,
    build_calculation_context,
    build_default_provider_registry,
    default_tax_rate,
    merge_adjustment_edit,
    with_default_exclusivity,
)
from engines.sales.commands import (
    SALES_ACTION_REDO_REQUEST,
    SALES_ACTION_UNDO_REQUEST,
    SALES_ADJUSTMENT_DELETE_REQUEST,
    SALES_ADJUSTMENT_UPSERT_REQUEST,
    SALES_CHANNEL_CONFIGURE_REQUEST,
    SALES_COMMAND_TYPES,
    SALES_DOCUMENT_CREATE_REQUEST,
    SALES_DOCUMENT_DELETE_REQUEST,
    SALES_DOCUMENT_UPDATE_REQUEST,
    SALES_LINE_DELETE_REQUEST,
    SALES_LINE_UPSERT_REQUEST,
    SALES_NOTE_ADD_REQUEST,
    SALES_NOTE_DELETE_REQUEST,
    SALES_PAYMENT_DELETE_REQUEST,
    SALES_PAYMENT_RECORD_REQUEST,
    SALES_PAYMENT_UPDATE_REQUEST,
    SALES_QUOTE_CONVERT_REQUEST,
    SALES_SHIPMENT_DELETE_REQUEST,
    SALES_SHIPMENT_RECORD_REQUEST,
    SALES_TAGS_SET_REQUEST,
    SALES_TAX_RATE_CONFIGURE_REQUEST,
    SALES_TAX_RATE_DELETE_REQUEST,
)
from engines.sales.events import (
    SALES_DOCUMENT_TOTALS_CALCULATED_V1,
    build_action_replayed_payload,
    build_state_changed_payload,
    build_totals_calculated_payload,
    register_sales_event_types,
    resolve_sales_event_type,
)
from engines.sales.policies import evaluate_sales_policies

logger = logging.getLogger("sbo.sales")

RESOURCE_DOCUMENT = "sales.document"
RESOURCE_DOCUMENT_GRAPH = "sales.document_graph"
RESOURCE_TAX_RATES = "sales.tax_rates"
RESOURCE_CHANNEL = "sales.channel"

DOCUMENT_CHANGE_KEYS = (
    "status",
    "currency_code",
    "document_number",
    "customer_id",
    "channel_id",
    "comment",
    "shipping_method",
    "payment_method",
    "lines",
    "adjustments",
    "payments",
    "shipments",
    "notes",
    "tags",
    "totals",
)

DOCUMENT_HEADER_FIELDS = ("customer_id", "channel_id", "comment", "status")

UNPAID_PAYMENT_STATUSES = frozenset({"FAILED"})


class EventFactoryProtocol(Protocol):
    def __call__(self, *, command: Command, event_type: str, payload: dict) -> dict: ...


class PersistEventProtocol(Protocol):
    def __call__(self, *, event_data: dict, context: Any, registry: Any, **kw) -> Any: ...


# ══════════════════════════════════════════════════════════════
# PROJECTION STORE
# ══════════════════════════════════════════════════════════════

class SalesProjectionStore:
    """
    Current state of every sales resource, keyed by
    (tenant, resource kind, resource id).

    Events carry full resulting states, so apply() and restore() are
    the same operation.
    """

    def __init__(self):
        self._events: List[dict] = []
        self._resources: Dict[Tuple[str, str, str], dict] = {}
        self._lock = Lock()

    def apply(self, event_type: str, payload: dict) -> None:
        with self._lock:
            self._events.append({"event_type": event_type, "payload": payload})
        if "resource_kind" not in payload:
            return
        self.restore(
            payload["tenant_id"],
            payload["resource_kind"],
            payload["resource_id"],
            payload["state"],
        )

    def restore(
        self,
        tenant_id,
        resource_kind: str,
        resource_id: str,
        state: Optional[dict],
    ) -> None:
        if resource_kind == RESOURCE_DOCUMENT_GRAPH:
            for document_id, document in sorted((state or {}).items()):
                self.restore(tenant_id, RESOURCE_DOCUMENT, document_id, document)
            return

        key = (str(tenant_id), resource_kind, str(resource_id))
        with self._lock:
            if state is None:
                self._resources.pop(key, None)
            else:
                self._resources[key] = copy.deepcopy(state)

    def get(self, tenant_id, resource_kind: str, resource_id) -> Optional[dict]:
        with self._lock:
            state = self._resources.get(
                (str(tenant_id), resource_kind, str(resource_id))
            )
        return copy.deepcopy(state) if state is not None else None

    def get_document(self, tenant_id, document_id: str) -> Optional[dict]:
        return self.get(tenant_id, RESOURCE_DOCUMENT, document_id)

    def list_documents(self, tenant_id, document_kind: Optional[str] = None) -> List[dict]:
        tenant = str(tenant_id)
        with self._lock:
            documents = [
                copy.deepcopy(state)
                for (owner, kind, _), state in sorted(self._resources.items())
                if owner == tenant and kind == RESOURCE_DOCUMENT
            ]
        if document_kind is None:
            return documents
        return [d for d in documents if d["document_kind"] == document_kind]

    def get_tax_rates(self, tenant_id, organization_id) -> Dict[str, TaxRate]:
        state = self.get(tenant_id, RESOURCE_TAX_RATES, organization_id)
        if state is None:
            return {}
        return {
            tax_rate_id: TaxRate.from_dict(data)
            for tax_rate_id, data in state["rates"].items()
        }

    def get_tax_rate(self, tenant_id, organization_id, tax_rate_id: str) -> Optional[dict]:
        state = self.get(tenant_id, RESOURCE_TAX_RATES, organization_id)
        if state is None:
            return None
        return state["rates"].get(tax_rate_id)

    def get_channel(self, tenant_id, channel_id: str) -> Optional[dict]:
        return self.get(tenant_id, RESOURCE_CHANNEL, channel_id)

    @property
    def events(self) -> List[dict]:
        with self._lock:
            return list(self._events)


# ══════════════════════════════════════════════════════════════
# DOCUMENT HELPERS
# ══════════════════════════════════════════════════════════════

def reconcile_payments(payments) -> ExistingTotals:
    """
    paid     = Σ captured amount (or amount when nothing was captured)
    refunded = Σ refunded amount
    Failed payments count for neither.
    """
    paid = Decimal("0")
    refunded = Decimal("0")
    for payment in payments:
        if payment.get("status") in UNPAID_PAYMENT_STATUSES:
            continue
        captured = Decimal(str(payment.get("captured_amount") or "0"))
        paid += captured if captured > 0 else Decimal(str(payment["amount"]))
        refunded += Decimal(str(payment.get("refunded_amount") or "0"))
    return ExistingTotals(paid_total_amount=paid, refunded_total_amount=refunded)


def fulfilled_quantities(shipments) -> Dict[str, str]:
    totals: Dict[str, Decimal] = {}
    for shipment in shipments:
        for item in shipment["items"]:
            line_id = item["line_id"]
            totals[line_id] = totals.get(line_id, Decimal("0")) + Decimal(
                str(item["quantity"])
            )
    return {line_id: str(quantity) for line_id, quantity in sorted(totals.items())}


def _upsert_entry(entries: List[dict], entry: dict, id_key: str) -> List[dict]:
    result = list(entries)
    for index, existing in enumerate(result):
        if existing.get(id_key) == entry[id_key]:
            result[index] = entry
            return result
    result.append(entry)
    return result


def _remove_entry(entries: List[dict], id_key: str, entry_id: str) -> List[dict]:
    return [entry for entry in entries if entry.get(id_key) != entry_id]


@dataclass(frozen=True)
class _Mutation:
    resource_kind: str
    resource_id: str
    before: Optional[dict]
    after: Optional[dict]
    action_label: str
    change_keys: Tuple[str, ...] = ()
    calculation: Optional[CalculationResult] = None
    recalculated: Optional[dict] = None


# ══════════════════════════════════════════════════════════════
# SERVICE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SalesExecutionResult:
    event_type: str
    event_data: dict
    persist_result: Any
    projection_applied: bool
    undo_token: Optional[str] = None
    calculation: Optional[CalculationResult] = None
    totals_event: Optional[dict] = None


class _SalesCommandHandler:
    def __init__(self, service: "SalesService"):
        self._service = service

    def execute(self, command: Command) -> SalesExecutionResult:
        return self._service._execute_command(command)


class SalesService:
    def __init__(self, *, tenant_context, command_bus,
                 event_factory: EventFactoryProtocol,
                 persist_event: PersistEventProtocol,
                 event_type_registry,
                 projection_store: SalesProjectionStore | None = None,
                 calculation_service: SalesCalculationService | None = None,
                 action_log=None,
                 dispatcher=None):
        self._tenant_context = tenant_context
        self._command_bus = command_bus
        self._event_factory = event_factory
        self._persist_event = persist_event
        self._event_type_registry = event_type_registry
        self._projection_store = projection_store or SalesProjectionStore()
        self._calculation_service = calculation_service or SalesCalculationService(
            provider_registry=build_default_provider_registry(),
        )
        self._action_log = action_log if action_log is not None else InMemoryActionLog()
        self._dispatcher = dispatcher

        self._builders: Dict[str, Callable[[Command], _Mutation]] = {
            SALES_DOCUMENT_CREATE_REQUEST: self._build_document_create,
            SALES_DOCUMENT_UPDATE_REQUEST: self._build_document_update,
            SALES_DOCUMENT_DELETE_REQUEST: self._build_document_delete,
            SALES_LINE_UPSERT_REQUEST: self._build_line_upsert,
            SALES_LINE_DELETE_REQUEST: self._build_line_delete,
            SALES_ADJUSTMENT_UPSERT_REQUEST: self._build_adjustment_upsert,
            SALES_ADJUSTMENT_DELETE_REQUEST: self._build_adjustment_delete,
            SALES_QUOTE_CONVERT_REQUEST: self._build_quote_convert,
            SALES_PAYMENT_RECORD_REQUEST: self._build_payment_record,
            SALES_PAYMENT_UPDATE_REQUEST: self._build_payment_update,
            SALES_PAYMENT_DELETE_REQUEST: self._build_payment_delete,
            SALES_SHIPMENT_RECORD_REQUEST: self._build_shipment_record,
            SALES_SHIPMENT_DELETE_REQUEST: self._build_shipment_delete,
            SALES_NOTE_ADD_REQUEST: self._build_note_add,
            SALES_NOTE_DELETE_REQUEST: self._build_note_delete,
            SALES_TAGS_SET_REQUEST: self._build_tags_set,
            SALES_TAX_RATE_CONFIGURE_REQUEST: self._build_tax_rate_configure,
            SALES_TAX_RATE_DELETE_REQUEST: self._build_tax_rate_delete,
            SALES_CHANNEL_CONFIGURE_REQUEST: self._build_channel_configure,
        }

        register_sales_event_types(self._event_type_registry)
        if self._dispatcher is not None:
            self._dispatcher.register_policy(self._sales_policy_guard)
        handler = _SalesCommandHandler(self)
        for command_type in sorted(SALES_COMMAND_TYPES):
            self._command_bus.register_handler(command_type, handler)

    @property
    def projection_store(self) -> SalesProjectionStore:
        return self._projection_store

    @property
    def action_log(self):
        return self._action_log

    # ── Policies ──────────────────────────────────────────────

    def _evaluate_policies(self, command: Command) -> Optional[RejectionReason]:
        store = self._projection_store
        return evaluate_sales_policies(
            command,
            document_lookup=lambda document_id: store.get_document(
                command.tenant_id, document_id
            ),
            tax_rate_lookup=lambda tax_rate_id: store.get_tax_rate(
                command.tenant_id, command.organization_id, tax_rate_id
            ),
            action_lookup=self._action_log.get,
        )

    def _sales_policy_guard(self, command: Command, context) -> Optional[RejectionReason]:
        if command.command_type not in SALES_COMMAND_TYPES:
            return None
        return self._evaluate_policies(command)

    def _run_policies(self, command: Command) -> None:
        rejection = self._evaluate_policies(command)
        if rejection is not None:
            raise ValueError(rejection.message)

    # ── Execution ─────────────────────────────────────────────

    def _execute_command(self, command: Command) -> SalesExecutionResult:
        enforce_scope_guard(command)
        self._run_policies(command)

        event_type = resolve_sales_event_type(command.command_type)
        if event_type is None:
            raise ValueError(f"Unsupported sales command type: {command.command_type}")

        if command.command_type in (SALES_ACTION_UNDO_REQUEST, SALES_ACTION_REDO_REQUEST):
            return self._execute_replay(command, event_type)

        builder = self._builders.get(command.command_type)
        if builder is None:
            raise ValueError(f"No state builder for: {command.command_type}")

        mutation = builder(command)
        payload = build_state_changed_payload(
            command,
            resource_kind=mutation.resource_kind,
            resource_id=mutation.resource_id,
            state=mutation.after,
        )
        event_data = self._event_factory(
            command=command,
            event_type=event_type,
            payload=payload,
        )
        persist_result = self._persist_event(
            event_data=event_data,
            context=self._tenant_context,
            registry=self._event_type_registry,
            scope_requirement=command.scope_requirement,
        )

        if not is_persist_accepted(persist_result):
            logger.info(
                f"Sales event {event_type} not persisted for command "
                f"{command.command_id}"
            )
            return SalesExecutionResult(
                event_type=event_type,
                event_data=event_data,
                persist_result=persist_result,
                projection_applied=False,
                calculation=mutation.calculation,
            )

        self._projection_store.apply(event_type=event_type, payload=payload)
        entry = create_action_log_entry(
            command_id=command.command_id,
            command_type=command.command_type,
            action_label=mutation.action_label,
            tenant_id=command.tenant_id,
            organization_id=command.organization_id,
            actor_id=command.actor_id,
            executed_at=command.issued_at,
            before=Snapshot.capture(
                mutation.resource_kind, mutation.resource_id, mutation.before
            ),
            after=Snapshot.capture(
                mutation.resource_kind, mutation.resource_id, mutation.after
            ),
            change_keys=mutation.change_keys,
        )
        self._action_log.append(entry)

        totals_event = None
        if mutation.recalculated is not None:
            totals_event = self._emit_totals_calculated(command, mutation.recalculated)

        logger.info(
            f"{mutation.action_label} ({mutation.resource_kind}:"
            f"{mutation.resource_id}) undo token {entry.undo_token}"
        )
        return SalesExecutionResult(
            event_type=event_type,
            event_data=event_data,
            persist_result=persist_result,
            projection_applied=True,
            undo_token=entry.undo_token,
            calculation=mutation.calculation,
            totals_event=totals_event,
        )

    def _execute_replay(self, command: Command, event_type: str) -> SalesExecutionResult:
        """Undo restores the before snapshot, redo the after snapshot."""
        undo_token = command.payload["undo_token"]
        entry: ActionLogEntry = self._action_log.get(undo_token)
        undoing = command.command_type == SALES_ACTION_UNDO_REQUEST
        snapshot = entry.snapshot_before if undoing else entry.snapshot_after

        payload = build_action_replayed_payload(
            command,
            undo_token=undo_token,
            target_command_type=entry.command_type,
            resource_kind=snapshot.resource_kind,
            resource_id=snapshot.resource_id,
            state=snapshot.restore(),
        )
        event_data = self._event_factory(
            command=command,
            event_type=event_type,
            payload=payload,
        )
        persist_result = self._persist_event(
            event_data=event_data,
            context=self._tenant_context,
            registry=self._event_type_registry,
            scope_requirement=command.scope_requirement,
        )

        projection_applied = False
        if is_persist_accepted(persist_result):
            self._projection_store.apply(event_type=event_type, payload=payload)
            projection_applied = True
            if undoing:
                self._action_log.mark_undone(undo_token, command.issued_at)
            else:
                self._action_log.mark_redone(undo_token)
            logger.info(
                f"{'Undone' if undoing else 'Redone'}: {entry.action_label} "
                f"({entry.resource_kind}:{entry.resource_id})"
            )

        return SalesExecutionResult(
            event_type=event_type,
            event_data=event_data,
            persist_result=persist_result,
            projection_applied=projection_applied,
            undo_token=undo_token,
        )

    def _emit_totals_calculated(self, command: Command, document: dict) -> Optional[dict]:
        payload = build_totals_calculated_payload(command, document)
        event_data = self._event_factory(
            command=command,
            event_type=SALES_DOCUMENT_TOTALS_CALCULATED_V1,
            payload=payload,
        )
        persist_result = self._persist_event(
            event_data=event_data,
            context=self._tenant_context,
            registry=self._event_type_registry,
            scope_requirement=command.scope_requirement,
        )
        if not is_persist_accepted(persist_result):
            logger.info(
                f"totals_calculated not persisted for document "
                f"{document['document_id']}"
            )
            return None
        self._projection_store.apply(
            event_type=SALES_DOCUMENT_TOTALS_CALCULATED_V1, payload=payload
        )
        return event_data

    # ── Calculation ───────────────────────────────────────────

    def _recalculate(self, command: Command, document: dict) -> CalculationResult:
        """Run the totals engine and write its output into document."""
        organization_id = document["organization_id"]
        rates = self._projection_store.get_tax_rates(command.tenant_id, organization_id)
        context = build_calculation_context(
            tenant_id=command.tenant_id,
            organization_id=organization_id,
            currency_code=document["currency_code"],
            shipping_snapshot=document["shipping_method"],
            payment_snapshot=document["payment_method"],
        )
        result = self._calculation_service.calculate_document_totals(
            document_kind=document["document_kind"],
            lines=[LineDraft.from_dict(line) for line in document["lines"]],
            adjustments=[
                AdjustmentDraft.from_dict(adj) for adj in document["adjustments"]
            ],
            context=context,
            existing_totals=reconcile_payments(document["payments"]),
            tax_rates=rates,
            default_tax_rate=default_tax_rate(rates.values(), organization_id),
        )
        serialized = result.to_dict()
        document["calculated_lines"] = serialized["lines"]
        document["calculated_adjustments"] = serialized["adjustments"]
        document["totals"] = serialized["totals"]
        return result

    def _document_mutation(
        self,
        command: Command,
        before: Optional[dict],
        after: Optional[dict],
        action_label: str,
        *,
        recalculate: bool,
    ) -> _Mutation:
        calculation = None
        if after is not None:
            after["updated_at"] = command.issued_at.isoformat()
            if recalculate:
                calculation = self._recalculate(command, after)
        document_id = (after or before)["document_id"]
        return _Mutation(
            resource_kind=RESOURCE_DOCUMENT,
            resource_id=document_id,
            before=before,
            after=after,
            action_label=action_label,
            change_keys=DOCUMENT_CHANGE_KEYS,
            calculation=calculation,
            recalculated=after if calculation is not None else None,
        )

    def _load_document(self, command: Command) -> Tuple[dict, dict]:
        before = self._projection_store.get_document(
            command.tenant_id, command.payload["document_id"]
        )
        if before is None:
            raise ValueError(
                f"Document '{command.payload['document_id']}' not found."
            )
        return before, copy.deepcopy(before)

    # ── Documents ─────────────────────────────────────────────

    def _build_document_create(self, command: Command) -> _Mutation:
        p = command.payload
        document_kind = p["document_kind"]
        document = {
            "document_id": p["document_id"],
            "document_kind": document_kind,
            "tenant_id": str(command.tenant_id),
            "organization_id": str(command.organization_id),
            "currency_code": p["currency_code"],
            "status": "DRAFT" if document_kind == "quote" else "OPEN",
            "document_number": p.get("document_number") or p["document_id"],
            "customer_id": p.get("customer_id"),
            "channel_id": p.get("channel_id"),
            "comment": p.get("comment"),
            "shipping_method": copy.deepcopy(p.get("shipping_method")),
            "payment_method": copy.deepcopy(p.get("payment_method")),
            "lines": [LineDraft.from_dict(line).to_dict() for line in p.get("lines", ())],
            "adjustments": [
                AdjustmentDraft.from_dict(adj).to_dict()
                for adj in p.get("adjustments", ())
            ],
            "calculated_lines": [],
            "calculated_adjustments": [],
            "totals": None,
            "payments": [],
            "shipments": [],
            "fulfilled_quantities": {},
            "notes": [],
            "tags": sorted({t.strip() for t in p.get("tags", ()) if t.strip()}),
            "converted_from_quote_id": None,
            "converted_to_order_id": None,
            "created_at": command.issued_at.isoformat(),
        }
        return self._document_mutation(
            command, None, document, f"Create {document_kind}", recalculate=True
        )

    def _build_document_update(self, command: Command) -> _Mutation:
        p = command.payload
        before, document = self._load_document(command)

        for field_name in DOCUMENT_HEADER_FIELDS:
            if p.get(field_name) is not None:
                document[field_name] = p[field_name]
        if p.get("currency_code") is not None:
            document["currency_code"] = p["currency_code"]
        if p.get("clear_shipping_method"):
            document["shipping_method"] = None
        elif p.get("shipping_method") is not None:
            document["shipping_method"] = copy.deepcopy(p["shipping_method"])
        if p.get("clear_payment_method"):
            document["payment_method"] = None
        elif p.get("payment_method") is not None:
            document["payment_method"] = copy.deepcopy(p["payment_method"])

        recalculate = any(
            document[key] != before[key]
            for key in ("currency_code", "shipping_method", "payment_method")
        )
        return self._document_mutation(
            command, before, document,
            f"Update {document['document_kind']}", recalculate=recalculate,
        )

    def _build_document_delete(self, command: Command) -> _Mutation:
        before, _ = self._load_document(command)
        return self._document_mutation(
            command, before, None,
            f"Delete {before['document_kind']}", recalculate=False,
        )

    def _build_quote_convert(self, command: Command) -> _Mutation:
        p = command.payload
        quote_before, quote = self._load_document(command)
        order_id = p["order_id"]

        order = copy.deepcopy(quote_before)
        order.update({
            "document_id": order_id,
            "document_kind": "order",
            "status": "OPEN",
            "document_number": p.get("order_number") or order_id,
            "payments": [],
            "shipments": [],
            "fulfilled_quantities": {},
            "notes": [],
            "converted_from_quote_id": quote_before["document_id"],
            "converted_to_order_id": None,
            "created_at": command.issued_at.isoformat(),
            "updated_at": command.issued_at.isoformat(),
        })
        calculation = self._recalculate(command, order)

        quote["status"] = "CONVERTED"
        quote["converted_to_order_id"] = order_id
        quote["updated_at"] = command.issued_at.isoformat()

        quote_id = quote_before["document_id"]
        return _Mutation(
            resource_kind=RESOURCE_DOCUMENT_GRAPH,
            resource_id=quote_id,
            before={quote_id: quote_before, order_id: None},
            after={quote_id: quote, order_id: order},
            action_label="Convert quote to order",
            calculation=calculation,
            recalculated=order,
        )

    # ── Lines & adjustments ───────────────────────────────────

    def _build_line_upsert(self, command: Command) -> _Mutation:
        before, document = self._load_document(command)
        line = LineDraft.from_dict(command.payload["line"]).to_dict()
        document["lines"] = _upsert_entry(document["lines"], line, "line_id")
        return self._document_mutation(
            command, before, document, "Save line", recalculate=True
        )

    def _build_line_delete(self, command: Command) -> _Mutation:
        before, document = self._load_document(command)
        document["lines"] = _remove_entry(
            document["lines"], "line_id", command.payload["line_id"]
        )
        return self._document_mutation(
            command, before, document, "Delete line", recalculate=True
        )

    def _build_adjustment_upsert(self, command: Command) -> _Mutation:
        before, document = self._load_document(command)
        changes = dict(command.payload["adjustment"])
        adjustment_id = changes["adjustment_id"]

        existing = None
        for source in (document["adjustments"], document["calculated_adjustments"]):
            for data in source:
                if data.get("adjustment_id") == adjustment_id:
                    existing = AdjustmentDraft.from_dict(data)
                    break
            if existing is not None:
                break

        if existing is None:
            edited = AdjustmentDraft.from_dict(changes)
        else:
            edited = merge_adjustment_edit(existing, changes)

        document["adjustments"] = _upsert_entry(
            document["adjustments"], edited.to_dict(), "adjustment_id"
        )
        return self._document_mutation(
            command, before, document, "Save adjustment", recalculate=True
        )

    def _build_adjustment_delete(self, command: Command) -> _Mutation:
        before, document = self._load_document(command)
        document["adjustments"] = _remove_entry(
            document["adjustments"], "adjustment_id", command.payload["adjustment_id"]
        )
        return self._document_mutation(
            command, before, document, "Delete adjustment", recalculate=True
        )

    # ── Payments ──────────────────────────────────────────────

    def _build_payment_record(self, command: Command) -> _Mutation:
        p = command.payload
        before, document = self._load_document(command)
        payment = {
            "payment_id": p["payment_id"],
            "amount": p["amount"],
            "currency_code": p["currency_code"],
            "captured_amount": p.get("captured_amount"),
            "refunded_amount": p.get("refunded_amount"),
            "status": p.get("status") or "CAPTURED",
            "payment_method_id": p.get("payment_method_id"),
            "reference": p.get("reference"),
            "recorded_at": command.issued_at.isoformat(),
        }
        document["payments"] = document["payments"] + [payment]
        return self._document_mutation(
            command, before, document, "Record payment", recalculate=True
        )

    def _build_payment_update(self, command: Command) -> _Mutation:
        p = command.payload
        before, document = self._load_document(command)
        payments = []
        for payment in document["payments"]:
            if payment["payment_id"] == p["payment_id"]:
                payment = dict(payment)
                for key in ("amount", "captured_amount", "refunded_amount",
                            "status", "reference"):
                    if p.get(key) is not None:
                        payment[key] = p[key]
            payments.append(payment)
        document["payments"] = payments
        return self._document_mutation(
            command, before, document, "Update payment", recalculate=True
        )

    def _build_payment_delete(self, command: Command) -> _Mutation:
        before, document = self._load_document(command)
        document["payments"] = _remove_entry(
            document["payments"], "payment_id", command.payload["payment_id"]
        )
        return self._document_mutation(
            command, before, document, "Delete payment", recalculate=True
        )

    # ── Shipments ─────────────────────────────────────────────

    def _build_shipment_record(self, command: Command) -> _Mutation:
        p = command.payload
        before, document = self._load_document(command)
        shipment = {
            "shipment_id": p["shipment_id"],
            "items": [dict(item) for item in p["items"]],
            "carrier": p.get("carrier"),
            "tracking_number": p.get("tracking_number"),
            "shipped_at": command.issued_at.isoformat(),
        }
        document["shipments"] = document["shipments"] + [shipment]
        document["fulfilled_quantities"] = fulfilled_quantities(document["shipments"])
        return self._document_mutation(
            command, before, document, "Record shipment", recalculate=False
        )

    def _build_shipment_delete(self, command: Command) -> _Mutation:
        before, document = self._load_document(command)
        document["shipments"] = _remove_entry(
            document["shipments"], "shipment_id", command.payload["shipment_id"]
        )
        document["fulfilled_quantities"] = fulfilled_quantities(document["shipments"])
        return self._document_mutation(
            command, before, document, "Delete shipment", recalculate=False
        )

    # ── Notes & tags ──────────────────────────────────────────

    def _build_note_add(self, command: Command) -> _Mutation:
        p = command.payload
        before, document = self._load_document(command)
        document["notes"] = document["notes"] + [{
            "note_id": p["note_id"],
            "body": p["body"],
            "author_id": command.actor_id,
            "created_at": command.issued_at.isoformat(),
        }]
        return self._document_mutation(
            command, before, document, "Add note", recalculate=False
        )

    def _build_note_delete(self, command: Command) -> _Mutation:
        before, document = self._load_document(command)
        document["notes"] = _remove_entry(
            document["notes"], "note_id", command.payload["note_id"]
        )
        return self._document_mutation(
            command, before, document, "Delete note", recalculate=False
        )

    def _build_tags_set(self, command: Command) -> _Mutation:
        before, document = self._load_document(command)
        document["tags"] = sorted(set(command.payload["tags"]))
        return self._document_mutation(
            command, before, document, "Set tags", recalculate=False
        )

    # ── Configuration ─────────────────────────────────────────

    def _tax_rate_state(self, command: Command) -> Tuple[Optional[dict], Dict[str, TaxRate]]:
        before = self._projection_store.get(
            command.tenant_id, RESOURCE_TAX_RATES, command.organization_id
        )
        rates = self._projection_store.get_tax_rates(
            command.tenant_id, command.organization_id
        )
        return before, rates

    def _tax_rate_mutation(
        self, command: Command, before: Optional[dict],
        rates: Dict[str, TaxRate], action_label: str,
    ) -> _Mutation:
        organization_id = str(command.organization_id)
        after = {
            "organization_id": organization_id,
            "rates": {
                tax_rate_id: rate.to_dict()
                for tax_rate_id, rate in sorted(rates.items())
            },
            "updated_at": command.issued_at.isoformat(),
        }
        return _Mutation(
            resource_kind=RESOURCE_TAX_RATES,
            resource_id=organization_id,
            before=before,
            after=after,
            action_label=action_label,
            change_keys=("rates",),
        )

    def _build_tax_rate_configure(self, command: Command) -> _Mutation:
        p = command.payload
        before, rates = self._tax_rate_state(command)
        updated = TaxRate(
            tax_rate_id=p["tax_rate_id"],
            organization_id=str(command.organization_id),
            name=p["name"],
            code=p["code"],
            rate=p["rate"],
            is_compound=bool(p.get("is_compound")),
            is_default=bool(p.get("is_default")),
            priority=int(p.get("priority") or 0),
            country_code=p.get("country_code"),
            channel_id=p.get("channel_id"),
        )
        rates = with_default_exclusivity(rates, updated)
        return self._tax_rate_mutation(command, before, rates, "Save tax rate")

    def _build_tax_rate_delete(self, command: Command) -> _Mutation:
        before, rates = self._tax_rate_state(command)
        rates.pop(command.payload["tax_rate_id"], None)
        return self._tax_rate_mutation(command, before, rates, "Delete tax rate")

    def _build_channel_configure(self, command: Command) -> _Mutation:
        p = command.payload
        before = self._projection_store.get_channel(command.tenant_id, p["channel_id"])
        after = {
            "channel_id": p["channel_id"],
            "organization_id": str(command.organization_id),
            "name": p["name"],
            "code": p.get("code"),
            "description": p.get("description"),
            "is_active": bool(p.get("is_active", True)),
            "metadata": copy.deepcopy(p.get("metadata") or {}),
            "created_at": before["created_at"] if before else command.issued_at.isoformat(),
            "updated_at": command.issued_at.isoformat(),
        }
        return _Mutation(
            resource_kind=RESOURCE_CHANNEL,
            resource_id=p["channel_id"],
            before=before,
            after=after,
            action_label="Save sales channel",
            change_keys=("name", "code", "description", "is_active", "metadata"),
        )
