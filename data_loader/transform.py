"""
Shape mapped rows into records for the Bulk API (STREAMING) or the
collections/composite API (BATCH).
"""

import logging
import re
from datetime import date, datetime, time
from typing import Any, Dict, List

import pandas as pd

from .config import BULK_API_NULL_VALUE, DEFAULT_DATE_FORMAT, ApiMode, LoadOptions
from .models import FieldMapping, FieldMappingItem
from .related_records import EXPLICIT_NULL, is_empty

logger = logging.getLogger(__name__)

ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}')
TIME_FORMATS = ['%H:%M:%S.%f', '%H:%M:%S', '%H:%M', '%I:%M:%S %p', '%I:%M %p', '%I:%M%p']
TRUE_VALUES = {'true', 't', 'yes', 'y', '1'}
FALSE_VALUES = {'false', 'f', 'no', 'n', '0'}


def _to_timestamp(value, date_format: str):
    if isinstance(value, (datetime, date, pd.Timestamp)):
        return pd.Timestamp(value)
    value = str(value).strip()
    if ISO_DATE.match(value):
        return pd.Timestamp(value)
    return pd.to_datetime(
        value,
        dayfirst=date_format.upper().startswith('DD'),
        yearfirst=date_format.upper().startswith('YYYY'),
    )


def _build_date(value, date_format: str, field_type: str):
    try:
        timestamp = _to_timestamp(value, date_format)
    except (ValueError, TypeError, OverflowError) as e:
        # Salesforce reports the invalid value on the record
        logger.debug(f"Could not parse {value!r} as {field_type}: {e}")
        return value
    if pd.isna(timestamp):
        return value
    if field_type == 'date':
        return timestamp.strftime('%Y-%m-%d')
    if timestamp.tzinfo is None:
        timestamp = timestamp.tz_localize('UTC')
    return timestamp.isoformat(timespec='milliseconds')


def _build_time(value):
    if isinstance(value, time):
        return value.strftime('%H:%M:%S.') + f"{value.microsecond // 1000:03d}Z"
    text = str(value).strip().rstrip('Z')
    for time_format in TIME_FORMATS:
        try:
            parsed = datetime.strptime(text, time_format)
        except ValueError:
            continue
        return parsed.strftime('%H:%M:%S.') + f"{parsed.microsecond // 1000:03d}Z"
    return value


def transform_value(value: Any, field_type: str, date_format: str = DEFAULT_DATE_FORMAT) -> Any:
    """Convert a value to the format Salesforce expects for the field type."""
    if is_empty(value):
        return value
    if field_type == 'date':
        return _build_date(value, date_format, 'date')
    if field_type == 'datetime':
        return _build_date(value, date_format, 'datetime')
    if field_type == 'time':
        return _build_time(value)
    if field_type == 'boolean' and isinstance(value, str):
        lowercase = value.strip().lower()
        if lowercase in TRUE_VALUES:
            return True
        if lowercase in FALSE_VALUES:
            return False
    return value


def _set_lookup_value(output: Dict[str, Any], item: FieldMappingItem, value: Any, api_mode: ApiMode):
    polymorphic = item.field_metadata is not None and item.field_metadata.is_polymorphic
    if api_mode == ApiMode.BATCH:
        reference = {item.target_lookup_field: value}
        if polymorphic:
            reference = {'attributes': {'type': item.selected_reference_to}, **reference}
        output[item.relationship_name] = reference
    elif polymorphic:
        output[f"{item.selected_reference_to}:{item.relationship_name}.{item.target_lookup_field}"] = value
    else:
        output[f"{item.relationship_name}.{item.target_lookup_field}"] = value


def transform_row(row: Dict[str, Any], field_mapping: FieldMapping, sobject: str, options: LoadOptions) -> Dict[str, Any]:
    output: Dict[str, Any] = {}
    mapped_items = [item for item in field_mapping.values() if item.target_field]
    for i, item in enumerate(mapped_items):
        if options.api_mode == ApiMode.BATCH and i == 0:
            output['attributes'] = {'type': sobject}

        value = row.get(item.csv_field)
        if value is EXPLICIT_NULL:
            value = None
        elif is_empty(value):
            if options.api_mode == ApiMode.STREAMING and options.insert_nulls:
                value = BULK_API_NULL_VALUE
            elif options.api_mode == ApiMode.BATCH and options.insert_nulls:
                value = None
            elif options.api_mode == ApiMode.BATCH:
                # the API clears existing values when null is sent, leave the field out instead
                continue
            elif not isinstance(value, str):
                value = None
        else:
            field_type = item.field_metadata.type if item.field_metadata else 'string'
            value = transform_value(value, field_type, options.date_format)

        if item.is_external_id_lookup:
            _set_lookup_value(output, item, value, options.api_mode)
        else:
            output[item.target_field] = value
    return output


def transform_data(rows: List[Dict[str, Any]], field_mapping: FieldMapping, sobject: str, options: LoadOptions) -> List[Dict[str, Any]]:
    """
    Build one record per row. Unmapped columns are skipped.

    Non external id lookups are written to the lookup field directly, they are
    expected to hold record ids by now (see related_records).
    """
    return [transform_row(row, field_mapping, sobject, options) for row in rows]
