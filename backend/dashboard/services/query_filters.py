"""
SQL fragments shared by the report queries.

Every value goes through a named query parameter; only identifiers that pass
``validate_dataset_id`` or come from constants are interpolated.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DATASET_ID_RE = re.compile(r"^[A-Za-z0-9_]+$")

ORDER_TYPE_MAIN = "main"
ORDER_TYPE_SAMPLE = "sample"
ORDER_TYPES = (ORDER_TYPE_MAIN, ORDER_TYPE_SAMPLE)


@dataclass
class WebsiteFilter:
    clause: str = ""
    params: Dict[str, Any] = field(default_factory=dict)


def build_website_filter(store_ids: Optional[List[str]], column: str = "website_id") -> WebsiteFilter:
    """Predicate restricting ``column`` to the resolved store ids.

    None means every website (no predicate). An empty list is rejected since
    ``IN ()`` is not valid SQL; reports return early before getting here.
    """
    if store_ids is None:
        return WebsiteFilter()
    if not store_ids:
        raise ValueError("Cannot build a website filter for an empty store id list")

    if len(store_ids) == 1:
        return WebsiteFilter(
            clause=f"AND {column} = @website_id",
            params={"website_id": store_ids[0]},
        )

    params = {f"website_id{i}": store_id for i, store_id in enumerate(store_ids)}
    placeholders = ", ".join(f"@{name}" for name in params)
    return WebsiteFilter(clause=f"AND {column} IN ({placeholders})", params=params)


def sample_order_filter(order_type: str, alias: str = "o") -> str:
    """Predicate splitting orders into sample and main (non-sample) orders."""
    if order_type not in ORDER_TYPES:
        raise ValueError(f"Unknown order type: {order_type!r}")
    flag = 1 if order_type == ORDER_TYPE_SAMPLE else 0
    return f"COALESCE(CAST({alias}.ext_is_samples AS INT64), 0) = {flag}"


def validate_dataset_id(dataset_id: str) -> str:
    if not dataset_id or not DATASET_ID_RE.match(dataset_id):
        raise ValueError(f"Invalid dataset id: {dataset_id!r}")
    return dataset_id


def table_ref(dataset_id: str, table: str) -> str:
    """Backtick-quoted ``dataset.table`` reference."""
    return f"`{validate_dataset_id(dataset_id)}.{table}`"
