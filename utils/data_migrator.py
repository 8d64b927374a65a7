# utils/data_migrator.py
"""
Seed the catalog from CSV exports.

    python -m utils.data_migrator products raw_data/products.csv
    python -m utils.data_migrator promo_codes raw_data/promo_codes.csv
"""

import argparse
import csv
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from supabase import Client

from domain.models import TAX_TYPES

logger = logging.getLogger(__name__)

BATCH_SIZE = 500

TRUE_VALUES = {"true", "t", "yes", "y", "1"}


def chunked(items: List[Dict], size: int) -> Iterable[List[Dict]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def read_csv(file_name: str) -> tuple[List[Dict], List[str]]:
    """
    Reads a headered CSV and returns (rows, columns_from_header).
    Strips whitespace from headers and values.
    """
    with open(file_name, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        if not reader.fieldnames:
            raise ValueError("CSV has no header row. Add headers that match DB column names.")

        columns = [c.strip() for c in reader.fieldnames if c and c.strip()]
        rows: List[Dict] = []

        for r in reader:
            obj = {}
            for k, v in r.items():
                if not k:
                    continue
                val = v.strip() if isinstance(v, str) else v
                # empty cell -> NULL
                if isinstance(val, str) and val == "":
                    val = None
                obj[k.strip()] = val

            rows.append({c: obj.get(c) for c in columns})

    return rows, columns


def dedupe_rows(rows: List[Dict], key_cols: List[str]) -> List[Dict]:
    """
    Deduplicate rows in-memory using key_cols, keeping the first occurrence.
    Key values compare case-insensitively; rows missing a key are dropped.
    """
    seen = set()
    out: List[Dict] = []

    for r in rows:
        key = tuple(str(r.get(c) or "").strip().upper() for c in key_cols)
        if any(k == "" for k in key):
            continue
        if key in seen:
            continue
        seen.add(key)
        out.append(r)

    return out


def _as_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    return str(value).strip().lower() in TRUE_VALUES


def _as_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _as_int(value: Any) -> Optional[int]:
    return None if value is None else int(float(value))


def coerce_product(row: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    for col in ("price", "bottle_price", "stock_quantity"):
        if col in out:
            out[col] = _as_float(out[col])
    if "low_stock_threshold" in out:
        out["low_stock_threshold"] = _as_int(out["low_stock_threshold"])
    if "scalable" in out:
        out["scalable"] = bool(_as_bool(out["scalable"]))
    if "tax_type" in out:
        tax_type = (out["tax_type"] or "none").lower()
        if tax_type not in TAX_TYPES:
            raise ValueError(f"Unknown tax_type {tax_type!r} for sku {out.get('sku')}")
        out["tax_type"] = tax_type
    return out


def coerce_promo(row: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    if out.get("code"):
        out["code"] = out["code"].upper()
    for col in ("discount_value", "min_order_amount"):
        if col in out:
            out[col] = _as_float(out[col])
    for col in ("max_uses", "uses_per_user_limit", "current_uses"):
        if col in out:
            out[col] = _as_int(out[col])
    for col in ("is_active", "is_public"):
        if col in out:
            out[col] = _as_bool(out[col])
    return out


# table -> (conflict columns, per-row coercion)
TABLES: Dict[str, tuple[List[str], Callable[[Dict], Dict]]] = {
    "products": (["sku"], coerce_product),
    "promo_codes": (["code"], coerce_promo),
}


def load_to_supabase(
        supabase: Client,
        schema_name: str,
        table_name: str,
        file_name: str,
        conflict_cols: Optional[List[str]] = None,
        column_list: Optional[List[str]] = None,
        batch_size: int = BATCH_SIZE,
) -> int:
    """
    Upsert the CSV into `table_name` in batches. Returns the number of rows sent.
    """
    default_conflict, coerce = TABLES.get(table_name, ([], dict))
    conflict_cols = conflict_cols or default_conflict
    if not conflict_cols:
        raise ValueError(f"No conflict columns known for table {table_name}")

    rows, header_cols = read_csv(file_name)

    # If you didn't pass column_list, use the CSV header
    if column_list is None:
        column_list = header_cols

    missing = [c for c in column_list if c not in header_cols]
    if missing:
        raise ValueError(f"CSV missing columns: {missing}. Found: {header_cols}")

    filtered = [{c: r.get(c) for c in column_list} for r in rows]

    # conflict columns must match a UNIQUE constraint in Postgres
    deduped = [coerce(r) for r in dedupe_rows(filtered, conflict_cols)]

    if not deduped:
        logger.warning("No valid rows to insert (after dedupe / missing key filtering).")
        return 0

    total = 0
    for batch in chunked(deduped, batch_size):
        resp = supabase.schema(schema_name).table(table_name).upsert(
            batch,
            on_conflict=",".join(conflict_cols)
        ).execute()
        if getattr(resp, "error", None):
            raise RuntimeError(f"Upsert into {table_name} failed after {total} rows: {resp.error}")
        total += len(batch)
        logger.info("Upserted %d rows (running total: %d)", len(batch), total)

    logger.info("Done: %s.%s <- %s (%d unique rows)", schema_name, table_name, file_name, total)
    return total


def main(argv: Optional[List[str]] = None) -> None:
    from data_integrator import get_client
    from settings import LOG_LEVEL, SCHEMA

    parser = argparse.ArgumentParser(description="Seed products / promo codes from CSV")
    parser.add_argument("table", choices=sorted(TABLES))
    parser.add_argument("file")
    parser.add_argument("--schema", default=SCHEMA)
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE)
    args = parser.parse_args(argv)

    logging.basicConfig(level=LOG_LEVEL)
    load_to_supabase(
        supabase=get_client(),
        schema_name=args.schema,
        table_name=args.table,
        file_name=args.file,
        batch_size=args.batch_size,
    )


if __name__ == "__main__":
    main()
