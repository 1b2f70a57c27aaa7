"""
Prepare rows for loading: resolve related records, then shape each row for the write API.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

import pandas as pd

from .config import LoadOptions
from .exceptions import PrepareDataError
from .models import FieldMapping, PrepareDataResult
from .related_records import RelatedRecordResolver
from .transform import transform_data

logger = logging.getLogger(__name__)

Rows = Union[pd.DataFrame, List[Dict[str, Any]]]


def rows_from_dataframe(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Convert a DataFrame to row dicts, with NaN replaced by None."""
    return df.astype(object).where(pd.notna(df), None).to_dict(orient='records')


async def prepare_data(gateway, rows: Rows, sobject: str, field_mapping: FieldMapping,
                       options: Optional[LoadOptions] = None,
                       on_progress: Optional[Callable[[float], None]] = None) -> PrepareDataResult:
    """
    Resolve non external id lookups and transform every remaining row.

    Rows that fail lookup resolution are removed and reported in ``errors``,
    failed lookup queries are reported in ``query_errors``.

    Raises:
        PrepareDataError: If there are no rows or no mapped columns
    """
    options = options or LoadOptions()
    if isinstance(rows, pd.DataFrame):
        rows = rows_from_dataframe(rows)
    if not sobject:
        raise PrepareDataError("An object is required")
    if not rows:
        raise PrepareDataError("There are no rows to load")
    if not any(item.target_field for item in field_mapping.values()):
        raise PrepareDataError("At least one column must be mapped")

    resolver = RelatedRecordResolver(gateway, sobject, field_mapping, options.api_mode)
    resolved = await resolver.resolve(rows, on_progress)

    records = transform_data(resolved.rows, field_mapping, sobject, options)
    logger.info(
        f"Prepared {len(records)} {sobject} records ({len(resolved.errors)} rows with errors, "
        f"{len(resolved.query_errors)} failed queries)"
    )
    return PrepareDataResult(rows=records, errors=resolved.errors, query_errors=resolved.query_errors)
