"""
Query Executor
Runs one report query and post-processes its rows:

    warehouse rows -> normalize -> typed defaults -> currency conversion -> regroup -> typed rows

Conversion always happens before regrouping so that rows from stores in
different currencies are summed in the reporting currency.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel

from dashboard.services.aggregation import MonetaryField, convert_rows, normalize_row, regroup_rows
from dashboard.services.document_store import DocumentStore
from dashboard.services.exchange_rate_service import CurrencyConversionIndex, ExchangeRateService
from dashboard.services.warehouse import Warehouse, WarehouseQueryError

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT", bound=BaseModel)


@dataclass
class PostProcessSpec:
    name: str
    row_model: Type[BaseModel]
    monetary_fields: Sequence[MonetaryField] = ()
    group_by: Sequence[str] = ()
    sum_fields: Sequence[str] = ()
    max_fields: Sequence[str] = ()
    fallback_month: Optional[str] = None
    store_field: str = "website_id"
    regroup: bool = True


@dataclass
class QueryExecutor:
    warehouse: Warehouse
    store: DocumentStore
    rates: ExchangeRateService = field(default_factory=ExchangeRateService)
    location: Optional[str] = None
    _indexes: Dict[str, CurrencyConversionIndex] = field(default_factory=dict, repr=False)

    def currency_index(self, client_id: str) -> CurrencyConversionIndex:
        if client_id not in self._indexes:
            self._indexes[client_id] = self.rates.load_index(self.store, client_id)
        return self._indexes[client_id]

    async def fetch(self, sql: str, params: Dict[str, Any], name: str) -> List[Dict[str, Any]]:
        """Run a query and return normalized raw rows."""
        try:
            rows = await self.warehouse.query(sql, params, location=self.location)
        except WarehouseQueryError:
            logger.exception("Warehouse query for %s failed (params=%s)", name, params)
            raise
        return [normalize_row(r) for r in rows]

    async def execute(self, sql: str, params: Dict[str, Any], spec: PostProcessSpec, client_id: str) -> List[Any]:
        raw_rows = await self.fetch(sql, params, spec.name)
        if not raw_rows:
            return []

        # Typed defaults first (null numerics -> 0), keeping the store column for conversion
        rows = [{**raw, **spec.row_model.model_validate(raw).model_dump()} for raw in raw_rows]

        if spec.monetary_fields:
            convert_rows(rows, self.currency_index(client_id), spec.monetary_fields, spec.fallback_month)

        if spec.regroup and spec.group_by:
            rows = regroup_rows(rows, spec.group_by, spec.sum_fields, spec.max_fields, drop_fields=(spec.store_field,))

        return [spec.row_model.model_validate(r) for r in rows]
