"""
Map input columns to fields on the object being loaded.

Auto-mapping tries, in order, for the part of the header before the first ".":

1. exact API name (or relationship name)
2. lowercase API name
3. lowercase API name without special characters
4. the same three steps against the field label

If the header has a ".", the part after it is matched against the lookup
fields of each related object (exact, then case-insensitive).
"""

import logging
import re
from collections import Counter
from typing import Dict, List, Optional, Tuple

from .exceptions import MappingError
from .models import FieldDescriptor, FieldMapping, FieldMappingItem, RelatedField

logger = logging.getLogger(__name__)

NOT_ALPHANUMERIC = re.compile(r'[^A-Za-z0-9]')

_UNMAPPED = {
    'target_field': None,
    'mapped_to_lookup': False,
    'field_metadata': None,
    'relationship_name': None,
    'target_lookup_field': None,
    'related_field_metadata': None,
    'selected_reference_to': None,
    'is_binary_body_field': False,
}


def _strip(value: str) -> str:
    return NOT_ALPHANUMERIC.sub('', value)


def _build_indexes(fields: List[FieldDescriptor]) -> List[Dict[str, FieldDescriptor]]:
    api_exact: Dict[str, FieldDescriptor] = {}
    api_lower: Dict[str, FieldDescriptor] = {}
    api_stripped: Dict[str, FieldDescriptor] = {}
    label_exact: Dict[str, FieldDescriptor] = {}
    label_lower: Dict[str, FieldDescriptor] = {}
    label_stripped: Dict[str, FieldDescriptor] = {}

    for field in fields:
        lowercase = field.name.lower()
        api_exact.setdefault(field.name, field)
        api_lower.setdefault(lowercase, field)
        api_stripped.setdefault(_strip(lowercase), field)

        lowercase_label = field.label.lower()
        label_exact.setdefault(field.label, field)
        label_lower.setdefault(lowercase_label, field)
        label_stripped.setdefault(_strip(lowercase_label), field)

    # relationship names never take the place of a real field name
    for field in fields:
        if field.relationship_name:
            api_exact.setdefault(field.relationship_name, field)
            api_lower.setdefault(field.relationship_name.lower(), field)

    return [api_exact, api_lower, api_stripped, label_exact, label_lower, label_stripped]


def _match_field(indexes: List[Dict[str, FieldDescriptor]], base: str) -> Optional[FieldDescriptor]:
    lowercase = base.lower()
    candidates = [base, lowercase, _strip(lowercase)] * 2
    for index, candidate in zip(indexes, candidates):
        if candidate and candidate in index:
            return index[candidate]
    return None


def _match_related_field(field: FieldDescriptor, related: str) -> Tuple[Optional[str], Optional[RelatedField]]:
    """Find the first related object (in catalog order) with a field matching the name."""
    for related_object, related_fields in (field.related_fields or {}).items():
        for related_field in related_fields:
            if related == related_field.name or related.lower() == related_field.name.lower():
                return related_object, related_field
    return None, None


def auto_map_fields(input_header: List[str], fields: List[FieldDescriptor], binary_body_field: Optional[str] = None) -> FieldMapping:
    """
    Attempt to match every input column to a field.

    Columns without a match are kept with ``target_field=None``.
    """
    indexes = _build_indexes(fields)
    output: FieldMapping = {}

    for header in input_header:
        base, _, related = header.partition('.')
        matched_field = _match_field(indexes, base)

        item = FieldMappingItem(
            csv_field=header,
            target_field=matched_field.name if matched_field else None,
            field_metadata=matched_field,
            is_binary_body_field=bool(binary_body_field) and matched_field is not None and matched_field.name == binary_body_field,
        )

        if related and matched_field:
            related_object, matched_related_field = _match_related_field(matched_field, related)
            if matched_related_field:
                item = item.model_copy(update={
                    'mapped_to_lookup': True,
                    'target_lookup_field': matched_related_field.name,
                    'relationship_name': matched_field.relationship_name,
                    'related_field_metadata': matched_related_field,
                    'selected_reference_to': related_object,
                })
            else:
                # never fall back to the base field, its values are not record ids
                item = FieldMappingItem(csv_field=header)

        output[header] = item

    mapping = check_for_duplicate_field_mappings(output)
    mapped = sum(1 for item in mapping.values() if item.target_field)
    logger.info(f"Auto-mapped {mapped} of {len(input_header)} columns")
    return mapping


def reset_field_mapping(input_header: List[str]) -> FieldMapping:
    return {header: FieldMappingItem(csv_field=header) for header in input_header}


def check_for_duplicate_field_mappings(field_mapping: FieldMapping) -> FieldMapping:
    """Return a new mapping with ``is_duplicate_mapped_field`` recomputed from the target fields."""
    frequency = Counter(item.target_field for item in field_mapping.values() if item.target_field)
    return {
        key: item.model_copy(update={
            'is_duplicate_mapped_field': bool(item.target_field) and frequency[item.target_field] > 1,
        })
        for key, item in field_mapping.items()
    }


def update_field_mapping(field_mapping: FieldMapping, csv_field: str, fields: Optional[List[FieldDescriptor]] = None,
                         binary_body_field: Optional[str] = None, **changes) -> FieldMapping:
    """
    Manually change the mapping of one column.

    The item is rebuilt with ``changes`` applied and duplicates are checked again.
    Clearing ``target_field`` also clears any lookup details. Pointing it at a
    different field starts over from that field's descriptor, taken from
    ``changes['field_metadata']`` or looked up in ``fields``. Lookup details are
    only kept when they are passed in ``changes``.
    """
    if csv_field not in field_mapping:
        raise KeyError(csv_field)
    item = field_mapping[csv_field]
    target_field = changes.get('target_field', item.target_field)

    if 'target_field' in changes and not target_field:
        changes = {**_UNMAPPED, **changes}
    elif target_field != item.target_field:
        field_metadata = changes.get('field_metadata')
        if field_metadata is None:
            field_metadata = next((field for field in fields or [] if field.name == target_field), None)
        if field_metadata is None or field_metadata.name != target_field:
            raise MappingError(f"Field {target_field} is not available for column {csv_field}")
        changes = {
            **_UNMAPPED,
            'field_metadata': field_metadata,
            'is_binary_body_field': bool(binary_body_field) and target_field == binary_body_field,
            **changes,
        }

    output = dict(field_mapping)
    output[csv_field] = item.model_copy(update=changes)
    return check_for_duplicate_field_mappings(output)


def get_field_header_from_mapping(field_mapping: FieldMapping) -> List[str]:
    """Output column names, external id lookups are written as relationship.field."""
    output = []
    for item in field_mapping.values():
        if not item.target_field:
            continue
        if item.is_external_id_lookup:
            output.append(f"{item.relationship_name}.{item.target_lookup_field}")
        else:
            output.append(item.target_field)
    return output
