"""
Catalog Importer - Loads rental equipment from a CSV export into a store.

Header names are normalised (case, spaces, punctuation) and common aliases
are accepted, so spreadsheets exported by hand import without editing.
"""
import hashlib
import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Union

import pandas as pd

from ..engine.models import Equipment

logger = logging.getLogger(__name__)

COLUMN_ALIASES = {
    'id': ['equipment_id', 'sku', 'code'],
    'daily_rate': ['daily_price', 'price_day', 'price', 'rate'],
    'weekly_rate': ['weekly_price', 'price_week'],
    'damage_deposit': ['deposit', 'security_deposit'],
    'quantity_available': ['qty_available', 'quantity', 'qty', 'stock'],
    'is_active': ['active', 'enabled'],
}

TRUE_VALUES = {'true', '1', 'yes', 'y', 't'}


def get_file_hash(path: Path) -> str:
    """Get SHA256 hash of a file."""
    if not path.exists():
        return ""
    with open(path, 'rb') as f:
        return hashlib.sha256(f.read()).hexdigest()[:12]


def _normalize_cols(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = (
        df.columns.astype(str)
        .str.strip().str.lower()
        .str.replace(r"[^\w]+", "_", regex=True)
        .str.strip("_")
    )
    for canonical, aliases in COLUMN_ALIASES.items():
        if canonical in df.columns:
            continue
        for alias in aliases:
            if alias in df.columns:
                df = df.rename(columns={alias: canonical})
                break
    return df


def _to_decimal(value) -> Union[Decimal, None]:
    if pd.isna(value):
        return None
    return Decimal(str(value)).quantize(Decimal('0.01'))


def _to_bool(value) -> bool:
    if pd.isna(value):
        return True
    return str(value).strip().lower() in TRUE_VALUES


def load_catalog_frame(path: Path) -> pd.DataFrame:
    """Read and canonicalise an equipment CSV."""
    df = pd.read_csv(path, dtype=str)
    df = _normalize_cols(df)
    if 'id' not in df.columns or 'daily_rate' not in df.columns:
        raise ValueError("Catalog must have id and daily_rate columns")

    df['id'] = df['id'].astype(str).str.strip()
    df.loc[df['id'].isin(['', 'nan', 'None']), 'id'] = None
    for col in ('daily_rate', 'weekly_rate', 'damage_deposit'):
        if col not in df.columns:
            df[col] = None
        df[col] = pd.to_numeric(df[col], errors='coerce')
    if 'quantity_available' not in df.columns:
        df['quantity_available'] = 1
    raw_qty = df['quantity_available']
    qty = pd.to_numeric(raw_qty, errors='coerce')
    # Kept so the import report can name values that were not numbers
    df['bad_quantity'] = raw_qty.where(raw_qty.notna() & qty.isna())
    df['quantity_available'] = qty.fillna(0).astype(int)
    if 'is_active' not in df.columns:
        df['is_active'] = True
    if 'name' not in df.columns:
        df['name'] = ""
    df['damage_deposit'] = df['damage_deposit'].fillna(0)
    return df


def import_catalog(path: Union[str, Path], store, verbose: bool = False) -> dict:
    """
    Import equipment rows from a CSV file into an EquipmentStore.

    Args:
        path: CSV file to read
        store: anything with add_equipment(Equipment)
        verbose: Print progress messages

    Returns:
        Import report dictionary
    """
    path = Path(path)
    report = {
        "timestamp": datetime.now().isoformat(),
        "status": "pending",
        "input_file": {},
        "metrics": {},
        "warnings": [],
        "errors": []
    }

    if not path.exists():
        msg = f"CRITICAL ERROR: {path} not found."
        report["errors"].append(msg)
        report["status"] = "failed"
        logger.error(msg)
        return report

    report["input_file"] = {"path": str(path), "hash": get_file_hash(path)}

    try:
        df = load_catalog_frame(path)
    except Exception as e:
        msg = f"ERROR: Failed to process {path}. {e}"
        report["errors"].append(msg)
        report["status"] = "failed"
        logger.error(msg)
        return report

    report["metrics"]["rows_read"] = len(df)

    missing_id = df['id'].isna()
    bad_rate = df['daily_rate'].isna() | (df['daily_rate'] <= 0)
    bad_weekly = df['weekly_rate'].notna() & (df['weekly_rate'] <= 0)
    rejected = df[missing_id | bad_rate | bad_weekly]
    for idx, row in rejected.iterrows():
        reason = "missing id" if pd.isna(row['id']) else "non-positive or missing rate"
        report["warnings"].append(f"Row {idx + 2} rejected: {reason}")
    if len(rejected):
        logger.warning("Rejected %d catalog rows from %s", len(rejected), path)

    df = df.drop(index=rejected.index)

    bad_quantity = df['bad_quantity'].dropna()
    for idx, raw in bad_quantity.items():
        report["warnings"].append(f"Row {idx + 2}: quantity_available '{raw}' is not a number, loaded as 0")
    if len(bad_quantity):
        logger.warning("Defaulted %d non-numeric quantities to 0 in %s", len(bad_quantity), path)

    # Last occurrence of an id wins
    duplicates = int(df['id'].duplicated(keep='last').sum())
    df = df.drop_duplicates('id', keep='last')
    if duplicates:
        report["warnings"].append(f"Removed {duplicates} duplicate equipment ids (kept last)")

    loaded = 0
    for _, row in df.iterrows():
        store.add_equipment(Equipment(
            id=row['id'],
            name=str(row['name']) if pd.notna(row['name']) else "",
            daily_rate=_to_decimal(row['daily_rate']),
            weekly_rate=_to_decimal(row['weekly_rate']),
            damage_deposit=_to_decimal(row['damage_deposit']) or Decimal('0.00'),
            quantity_available=int(row['quantity_available']),
            is_active=_to_bool(row['is_active']),
        ))
        loaded += 1

    report["metrics"].update({
        "rows_loaded": loaded,
        "rows_rejected": len(rejected),
        "duplicates_removed": duplicates,
        "quantities_defaulted": len(bad_quantity),
    })
    report["status"] = "success"

    if verbose:
        print(f"Loaded {loaded} equipment rows from {path.name}")
    logger.info("Imported %d equipment rows from %s", loaded, path)
    return report
