"""Reconciliation of extracted line items against the product master.

Each line item is matched by product key and classified as NEW_CANDIDATE,
UNMATCHED, NO_CHANGE, BLOCKED or UPDATE. Accepted changes are applied to the
product master and vendor prices, and each applied field mutation is recorded
once in the update history under ``{parse_run_id}:{product_id}:{field}``.

Re-finalizing a run reproduces the same decisions. The engine reads the run's
own history first: its ``before_value`` entries are used as the pre-run
baseline, and products this run created are treated as not yet matched.
Within a run, the first line (by line number) with an accepted change to a
given product field is the one that applies it.
"""

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Tuple

from priceledger.database.models import ProductMaster, UpdateHistory, VendorPrice
from priceledger.models.enums import (
    SOURCE_TYPE_PDF,
    BlockReason,
    DiffClassification,
    HistoryField,
    QualityFlag,
)
from priceledger.models.line_item import LineItemDraft
from priceledger.repositories.scope import ParseRepositories
from priceledger.repositories.update_history_repository import make_update_key
from priceledger.services.reconciliation.update_policy import (
    can_create_product,
    evaluate_update_policy,
    is_newer_price_date,
    price_deviation_ratio,
)
from priceledger.utils.logging import get_logger
from priceledger.utils.normalize import (
    normalize_category,
    normalize_optional_text,
    resolve_category,
    same_text,
)
from priceledger.utils.numeric import PRICE_SCALE, decimal_to_str, to_decimal

LOGGER = get_logger(__name__)


@dataclass
class ReconciliationResult:
    diff_rows: List[Dict[str, Any]]
    summary: Dict[str, int]
    history_rows: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class _Baseline:
    """Product state as it was before this parse run touched it."""

    product: ProductMaster
    spec: Optional[str]
    category: Optional[str]
    unit_price: Optional[Decimal]


@dataclass
class _RunState:
    parse_run_id: uuid.UUID
    vendor_name: Optional[str]
    invoice_date: Optional[date]
    current_prices: Dict[uuid.UUID, VendorPrice]
    created_keys: Dict[str, uuid.UUID] = field(default_factory=dict)
    applied: Set[Tuple[uuid.UUID, str]] = field(default_factory=set)
    history_rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def source_id(self) -> str:
        return str(self.parse_run_id)

    def claim(self, product_id: uuid.UUID, field_name: HistoryField) -> bool:
        """Reserve a product field for this line; False if an earlier line has it."""
        marker = (product_id, field_name.value)
        if marker in self.applied:
            return False
        self.applied.add(marker)
        return True

    def record(
        self,
        product_id: uuid.UUID,
        field_name: HistoryField,
        before: Optional[str],
        after: Optional[str],
        vendor_name: Optional[str] = None,
    ) -> None:
        self.history_rows.append(
            {
                "update_key": make_update_key(self.parse_run_id, product_id, field_name.value),
                "product_id": product_id,
                "field_name": field_name.value,
                "vendor_name": vendor_name,
                "before_value": before,
                "after_value": after,
                "source_type": SOURCE_TYPE_PDF,
                "source_id": self.source_id,
                "updated_by": "parse-workflow",
            }
        )


def _vendor_price_snapshot(vendor_name: Optional[str], unit_price: Optional[Decimal]) -> Optional[dict]:
    if not vendor_name:
        return None
    return {"vendor_name": vendor_name, "unit_price": decimal_to_str(unit_price)}


class ReconciliationEngine:
    """Matches line items to products and applies confidence-gated updates."""

    async def reconcile(
        self,
        repos: ParseRepositories,
        parse_run_id: uuid.UUID,
        vendor_name: Optional[str],
        invoice_date: Optional[date],
        line_items: List[LineItemDraft],
    ) -> ReconciliationResult:
        """Classify every line item, apply accepted changes and write history.

        Sets ``matched_product_id`` on the drafts. Diff rows are returned, not
        inserted, so the caller can insert them after the line items they
        reference.
        """
        products = await repos.products.get_by_keys(li.product_key for li in line_items)
        run_history = await repos.history.list_for_run(parse_run_id)

        created_by_run = {
            h.product_id for h in run_history if h.field_name == HistoryField.PRODUCT_CREATE.value
        }
        baseline_values = {(h.product_id, h.field_name): h for h in run_history}
        matchable = {key: p for key, p in products.items() if p.id not in created_by_run}

        current_prices: Dict[uuid.UUID, VendorPrice] = {}
        if vendor_name:
            current_prices = await repos.vendor_prices.get_for_products(
                (p.id for p in products.values()), vendor_name
            )

        state = _RunState(
            parse_run_id=parse_run_id,
            vendor_name=vendor_name,
            invoice_date=invoice_date,
            current_prices=current_prices,
        )

        diff_rows = []
        for item in sorted(line_items, key=lambda li: li.line_no):
            product = matchable.get(item.product_key) if item.product_key else None
            if product is None:
                classification, reason, before, after = await self._reconcile_unmatched(
                    repos, state, item
                )
            else:
                baseline = self._baseline(product, baseline_values, current_prices, vendor_name)
                classification, reason, before, after = await self._reconcile_matched(
                    repos, state, item, baseline
                )

            diff_rows.append(
                {
                    "id": uuid.uuid4(),
                    "parse_run_id": parse_run_id,
                    "line_item_id": item.id,
                    "classification": classification.value,
                    "reason": reason.value if reason else None,
                    "vendor_name": vendor_name,
                    "invoice_date": invoice_date,
                    "before": before,
                    "after": after,
                }
            )

        await repos.history.insert_many(state.history_rows)

        summary = {c.value: 0 for c in DiffClassification}
        summary.update(Counter(row["classification"] for row in diff_rows))

        LOGGER.info(
            "Reconciled line items",
            extra={
                "parse_run_id": str(parse_run_id),
                "line_items": len(line_items),
                "summary": summary,
                "history_rows": len(state.history_rows),
            },
        )
        return ReconciliationResult(
            diff_rows=diff_rows, summary=summary, history_rows=state.history_rows
        )

    def _baseline(
        self,
        product: ProductMaster,
        baseline_values: Dict[Tuple[uuid.UUID, str], UpdateHistory],
        current_prices: Dict[uuid.UUID, VendorPrice],
        vendor_name: Optional[str],
    ) -> _Baseline:
        spec = product.spec
        category = product.category
        price_row = current_prices.get(product.id)
        unit_price = price_row.unit_price if price_row is not None else None

        spec_entry = baseline_values.get((product.id, HistoryField.SPEC.value))
        if spec_entry is not None:
            spec = spec_entry.before_value
        category_entry = baseline_values.get((product.id, HistoryField.CATEGORY.value))
        if category_entry is not None:
            category = category_entry.before_value
        price_entry = baseline_values.get((product.id, HistoryField.UNIT_PRICE.value))
        if price_entry is not None and price_entry.vendor_name == vendor_name:
            unit_price = to_decimal(price_entry.before_value, PRICE_SCALE)

        return _Baseline(product=product, spec=spec, category=category, unit_price=unit_price)

    async def _reconcile_unmatched(
        self, repos: ParseRepositories, state: _RunState, item: LineItemDraft
    ) -> Tuple[DiffClassification, Optional[BlockReason], dict, dict]:
        name = normalize_optional_text(item.product_name_raw)
        spec = normalize_optional_text(item.spec_raw)
        proposal = {
            "product_key": item.product_key,
            "product_name": name,
            "spec": spec,
            "category": normalize_category(item.category),
            "vendor_price": _vendor_price_snapshot(state.vendor_name, item.unit_price),
        }

        if not item.product_key or not can_create_product(item.system_confidence, name):
            return DiffClassification.UNMATCHED, BlockReason.NO_PRODUCT_MATCH, {}, proposal

        category = resolve_category(None, item.category)
        quality_flag = QualityFlag.OK if spec else QualityFlag.WARN_KEY_WEAK

        product_id = state.created_keys.get(item.product_key)
        if product_id is None:
            product_id = await repos.products.create_if_absent(
                product_key=item.product_key,
                product_name=name,
                spec=spec,
                category=category,
                default_unit_price=item.unit_price,
                quality_flag=quality_flag.value,
                source_id=state.source_id,
            )
            state.created_keys[item.product_key] = product_id
        item.matched_product_id = product_id

        if state.claim(product_id, HistoryField.PRODUCT_CREATE):
            state.record(product_id, HistoryField.PRODUCT_CREATE, None, item.product_key)

        if state.vendor_name and item.unit_price is not None:
            if state.claim(product_id, HistoryField.UNIT_PRICE):
                await self._apply_price(repos, state, product_id, None, item.unit_price)

        after = {
            **proposal,
            "product_id": str(product_id),
            "category": category,
            "quality_flag": quality_flag.value,
        }
        return DiffClassification.NEW_CANDIDATE, None, {}, after

    async def _reconcile_matched(
        self,
        repos: ParseRepositories,
        state: _RunState,
        item: LineItemDraft,
        baseline: _Baseline,
    ) -> Tuple[DiffClassification, Optional[BlockReason], dict, dict]:
        product = baseline.product
        item.matched_product_id = product.id

        spec = normalize_optional_text(item.spec_raw)
        has_spec_change = spec is not None and not same_text(spec, baseline.spec)
        has_price_change = (
            bool(state.vendor_name)
            and item.unit_price is not None
            and (baseline.unit_price is None or item.unit_price != baseline.unit_price)
        )
        category = resolve_category(baseline.category, item.category)

        before = {
            "product_id": str(product.id),
            "product_key": product.product_key,
            "product_name": product.product_name,
            "spec": baseline.spec,
            "category": baseline.category,
            "vendor_price": _vendor_price_snapshot(state.vendor_name, baseline.unit_price)
            if baseline.unit_price is not None
            else None,
        }

        if not has_spec_change and not has_price_change:
            return DiffClassification.NO_CHANGE, None, before, dict(before)

        after = {
            **before,
            "spec": spec if has_spec_change else baseline.spec,
            "category": category,
            "vendor_price": _vendor_price_snapshot(state.vendor_name, item.unit_price)
            if has_price_change
            else before["vendor_price"],
        }

        deviation = price_deviation_ratio(item.unit_price, baseline.unit_price) if has_price_change else None
        decision = evaluate_update_policy(
            item.system_confidence, has_spec_change, has_price_change, deviation
        )
        if not decision.allowed:
            return DiffClassification.BLOCKED, decision.reason, before, after

        product_fields = {}
        if has_spec_change and state.claim(product.id, HistoryField.SPEC):
            if product.spec != spec:
                product_fields["spec"] = spec
            state.record(product.id, HistoryField.SPEC, baseline.spec, spec)

        if category != baseline.category and state.claim(product.id, HistoryField.CATEGORY):
            if product.category != category:
                product_fields["category"] = category
            state.record(product.id, HistoryField.CATEGORY, baseline.category, category)

        if product_fields:
            await repos.products.update_fields(product.id, state.source_id, **product_fields)

        if has_price_change and state.claim(product.id, HistoryField.UNIT_PRICE):
            await self._apply_price(repos, state, product.id, baseline.unit_price, item.unit_price)

        return DiffClassification.UPDATE, None, before, after

    async def _apply_price(
        self,
        repos: ParseRepositories,
        state: _RunState,
        product_id: uuid.UUID,
        before_price: Optional[Decimal],
        unit_price: Decimal,
    ) -> None:
        """Write the vendor price if the invoice is newer than the stored price."""
        stored = state.current_prices.get(product_id)
        if not is_newer_price_date(
            state.invoice_date,
            stored.price_updated_on if stored is not None else None,
            has_stored_price=stored is not None,
        ):
            LOGGER.info(
                "Price change accepted but invoice is not newer than stored price; not applied",
                extra={
                    "parse_run_id": state.source_id,
                    "product_id": str(product_id),
                    "invoice_date": str(state.invoice_date),
                    "stored_date": str(stored.price_updated_on) if stored is not None else None,
                },
            )
            return

        written = await repos.vendor_prices.upsert_price(
            product_id=product_id,
            vendor_name=state.vendor_name,
            unit_price=unit_price,
            price_updated_on=state.invoice_date,
            source_id=state.source_id,
        )
        if written:
            state.record(
                product_id,
                HistoryField.UNIT_PRICE,
                decimal_to_str(before_price),
                decimal_to_str(unit_price),
                vendor_name=state.vendor_name,
            )
