"""
Resolve lookups that are not mapped to an external id.

The write APIs accept external id lookups directly, but a lookup on any other
field (e.g. Account.Name) has to be turned into a record id before loading.
For every such column the distinct values are queried in batches that stay
under the query length limit, then each row gets the matching record id or a
row error. Rows with errors are dropped from the output.
"""

import logging
from collections import OrderedDict
from typing import AsyncIterator, Callable, Dict, List, Optional

import pandas as pd

from .config import (
    BULK_API_NULL_VALUE,
    MAX_QUERY_LENGTH,
    QUERY_ITEM_BUFFER_LENGTH,
    ApiMode,
    MultipleMatchPolicy,
    NoMatchPolicy,
)
from .models import FieldMapping, FieldMappingItem, PrepareDataResult, RowError

logger = logging.getLogger(__name__)


class ExplicitNull:
    """Marks a value that must be sent as null even when nulls are not inserted."""

    def __repr__(self):
        return 'EXPLICIT_NULL'


EXPLICIT_NULL = ExplicitNull()


def null_marker(api_mode: ApiMode):
    return EXPLICIT_NULL if api_mode == ApiMode.BATCH else BULK_API_NULL_VALUE


def is_empty(value) -> bool:
    if value is None or value is EXPLICIT_NULL:
        return True
    if isinstance(value, str):
        return value == ''
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def escape_soql_value(value: str) -> str:
    return (
        value
        .replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
    )


def _compose_query(related_object: str, related_field: str, extra_where_clause: str, values: List[str]) -> str:
    fields = ['Id'] if related_field == 'Id' else ['Id', related_field]
    in_clause = ', '.join(f"'{value}'" for value in values)
    return f"SELECT {', '.join(fields)} FROM {related_object} WHERE {extra_where_clause}{related_field} IN ({in_clause})"


def get_related_fields_queries(base_object: str, related_object: str, related_field: str, related_values: List[str]) -> List[str]:
    """
    Get as many queries as required to fetch all related values without exceeding the query length limit.

    Args:
        base_object: Object being loaded, used for special case filters (e.g. RecordType)
        related_object: Object being queried
        related_field: Field on the related object that holds the values
        related_values: Distinct values to look up

    Returns:
        List of SOQL queries, every value appears in exactly one query
    """
    extra_where_clause = ''
    if related_object.lower() == 'recordtype':
        extra_where_clause = f"SobjectType = '{escape_soql_value(base_object)}' AND "

    base_query_length = (
        len(f"SELECT Id, {related_field} FROM {related_object} WHERE {extra_where_clause}{related_field} IN ('")
        + QUERY_ITEM_BUFFER_LENGTH
    )

    queries = []
    batch: List[str] = []
    current_length = base_query_length
    for value in related_values:
        batch.append(escape_soql_value(value))
        current_length += len(value) + QUERY_ITEM_BUFFER_LENGTH
        if current_length >= MAX_QUERY_LENGTH:
            queries.append(_compose_query(related_object, related_field, extra_where_clause, batch))
            batch = []
            current_length = base_query_length
    if batch:
        queries.append(_compose_query(related_object, related_field, extra_where_clause, batch))
    return queries


class RelatedRecordResolver:
    """
    Replace non external id lookup values with record ids.

    ``run()`` is an async generator of progress values between 0 and 100. Once it
    is exhausted the outcome is available on ``result``. ``resolve()`` drains the
    generator for callers that only want the result (and optionally a callback).
    """

    def __init__(self, gateway, sobject: str, field_mapping: FieldMapping, api_mode: ApiMode = ApiMode.BATCH):
        self.gateway = gateway
        self.sobject = sobject
        self.field_mapping = field_mapping
        self.api_mode = api_mode
        self.result: Optional[PrepareDataResult] = None

    @property
    def lookup_items(self) -> List[FieldMappingItem]:
        return [item for item in self.field_mapping.values() if item.requires_related_lookup]

    async def run(self, rows: List[dict]) -> AsyncIterator[float]:
        rows = [dict(row) for row in rows]
        errors_by_row: Dict[int, RowError] = OrderedDict()
        query_errors: List[str] = []
        lookup_items = self.lookup_items

        if lookup_items:
            step = 100 / len(lookup_items)
            current = 0.0
            last_progress = 0.0

            for item in lookup_items:
                last_progress = max(last_progress, min(current, 100))
                yield last_progress

                related_records = {}
                related_values = self._get_related_values(rows, item.csv_field)
                if related_values:
                    queries = get_related_fields_queries(
                        self.sobject, item.selected_reference_to, item.target_lookup_field, related_values
                    )
                    logger.info(
                        f"Looking up {len(related_values)} values for {item.relationship_name}.{item.target_lookup_field} "
                        f"using {len(queries)} queries"
                    )
                    for current_query, query in enumerate(queries, start=1):
                        # stay within this item's share until it is done
                        last_progress = max(last_progress, min(current + (current_query / len(queries)) * step, current + step))
                        yield last_progress
                        try:
                            query_result = await self.gateway.query(query)
                        except Exception as e:
                            logger.warning(f"Related record query failed: {e}")
                            query_errors.append(str(e))
                            continue
                        for record in query_result.get('records', []):
                            related_records.setdefault(record.get(item.target_lookup_field), []).append(record['Id'])

                    self._apply_related_records(rows, item, related_records, errors_by_row)
                current += step
        yield 100.0

        # partial records are never loaded
        output_rows = [row for i, row in enumerate(rows) if i not in errors_by_row]
        if errors_by_row:
            logger.info(f"{len(errors_by_row)} rows removed because related records could not be resolved")
        self.result = PrepareDataResult(rows=output_rows, errors=list(errors_by_row.values()), query_errors=query_errors)

    async def resolve(self, rows: List[dict], on_progress: Optional[Callable[[float], None]] = None) -> PrepareDataResult:
        async for progress in self.run(rows):
            if on_progress:
                on_progress(progress)
        return self.result

    @staticmethod
    def _get_related_values(rows: List[dict], csv_field: str) -> List[str]:
        values = OrderedDict()
        for row in rows:
            value = row.get(csv_field)
            if not is_empty(value):
                values[str(value)] = None
        return list(values)

    def _apply_related_records(self, rows: List[dict], item: FieldMappingItem, related_records: Dict[str, List[str]],
                               errors_by_row: Dict[int, RowError]):
        field_relationship_name = f"{item.relationship_name}.{item.target_lookup_field}"
        for i, row in enumerate(rows):
            value = row.get(item.csv_field)
            if is_empty(value):
                continue
            matches = related_records.get(str(value))
            if not matches:
                if item.on_no_match == NoMatchPolicy.NULLIFY:
                    row[item.csv_field] = null_marker(self.api_mode)
                else:
                    self._add_error(errors_by_row, i, row,
                                    f'Related record not found for relationship "{field_relationship_name}" with a value of "{value}".')
            elif len(matches) > 1 and item.on_multiple_matches != MultipleMatchPolicy.USE_FIRST:
                self._add_error(errors_by_row, i, row,
                                f'Found {len(matches):,} related records for relationship "{field_relationship_name}" '
                                f'with a value of "{value}".')
            else:
                row[item.csv_field] = matches[0]

    @staticmethod
    def _add_error(errors_by_row: Dict[int, RowError], row_index: int, record: dict, message: str):
        if row_index not in errors_by_row:
            errors_by_row[row_index] = RowError(row_index=row_index, record=record, messages=[])
        errors_by_row[row_index].messages.append(message)


async def fetch_mapped_related_records(gateway, rows: List[dict], sobject: str, field_mapping: FieldMapping,
                                       api_mode: ApiMode = ApiMode.BATCH,
                                       on_progress: Optional[Callable[[float], None]] = None) -> PrepareDataResult:
    resolver = RelatedRecordResolver(gateway, sobject, field_mapping, api_mode)
    return await resolver.resolve(rows, on_progress)
