"""
Field metadata for the object being loaded.

Builds the list of loadable fields for an object and, for every lookup field,
the fields on each related object that can be used to find a record by value.
"""

import logging
from collections import OrderedDict
from typing import Dict, List

from .config import CUSTOM_METADATA_SUFFIX, MAX_REFERENCE_TO
from .exceptions import SchemaError
from .models import FieldDescriptor, RelatedField

logger = logging.getLogger(__name__)

RELATED_FIELD_DATA_TYPES = ['string', 'phone', 'url', 'email']


def filter_load_sobjects(sobject: dict) -> bool:
    """Return True if records can be loaded into the object from a global describe."""
    name = sobject['name']
    return (
        (sobject.get('createable') or sobject.get('updateable') or name.endswith(CUSTOM_METADATA_SUFFIX))
        and not name.endswith('__History')
        and not name.endswith('__Tag')
        and not name.endswith('__Feed')
    )


def field_metadata_filter(field: dict) -> bool:
    return bool(field.get('createable') or field.get('updateable') or field['name'] == 'Id')


def custom_metadata_field_filter(field: dict) -> bool:
    # Custom metadata reports every field as read-only, but they can be set through the metadata API
    return bool(field.get('custom') or field['name'] in ('DeveloperName', 'Label'))


def _get_reference_to(field: dict):
    if field.get('type') != 'reference' or not field.get('referenceTo'):
        return None
    reference_to = list(field['referenceTo'][:MAX_REFERENCE_TO])
    # User is the most common choice when only two objects are allowed, so it goes first
    if len(reference_to) == 2 and reference_to[1] == 'User':
        reference_to.reverse()
    return reference_to


def _quote(value: str) -> str:
    return "'" + value.replace("'", "\\'") + "'"


def get_external_id_fields_query(sobjects: List[str]) -> str:
    """Query EntityParticle for fields on the given objects that can identify a related record."""
    soql = (
        "SELECT Id, Name, EntityDefinitionId, EntityDefinition.QualifiedApiName, IsIdLookup, "
        "DataType, ValueTypeId, ReferenceTo, IsCreatable, IsUpdatable, Label, MasterLabel, "
        "QualifiedApiName, RelationshipName "
        "FROM EntityParticle "
        f"WHERE EntityDefinition.QualifiedApiName IN ({', '.join(_quote(s) for s in sobjects)}) "
        "AND QualifiedApiName != 'Id' "
        f"AND DataType IN ({', '.join(_quote(t) for t in RELATED_FIELD_DATA_TYPES)}) "
        "ORDER BY EntityDefinitionId, Label"
    )
    logger.info(f"get_external_id_fields_query(): {soql}")
    return soql


def _build_field(field: dict) -> FieldDescriptor:
    return FieldDescriptor(
        name=field['name'],
        label=field.get('label') or field['name'],
        type=field.get('type', 'string'),
        soap_type=field.get('soapType'),
        external_id=bool(field.get('externalId')),
        type_label=field.get('typeLabel'),
        reference_to=_get_reference_to(field),
        relationship_name=field.get('relationshipName') or None,
    )


def _group_related_fields(records: List[dict]) -> Dict[str, List[RelatedField]]:
    related_fields_by_object: Dict[str, List[RelatedField]] = OrderedDict()
    for record in records:
        entity = (record.get('EntityDefinition') or {}).get('QualifiedApiName')
        if not entity:
            continue
        related_fields_by_object.setdefault(entity, []).append(
            RelatedField(
                name=record['Name'],
                label=record.get('Label') or record['Name'],
                type=record.get('DataType') or 'string',
                is_external_id=bool(record.get('IsIdLookup')),
            )
        )
    return related_fields_by_object


async def get_field_metadata(gateway, sobject: str) -> List[FieldDescriptor]:
    """
    Get all loadable fields for an object, including related object fields for lookups.

    Args:
        gateway: Object providing async ``describe(sobject)`` and ``query(soql)``
        sobject: API name of the object being loaded

    Returns:
        List of field descriptors, in describe order

    Raises:
        SchemaError: If the describe result has no field list
    """
    describe_result = await gateway.describe(sobject)
    raw_fields = describe_result.get('fields') if isinstance(describe_result, dict) else None
    if not isinstance(raw_fields, list):
        raise SchemaError(f"Describe result for {sobject} does not contain a list of fields")

    field_filter = custom_metadata_field_filter if sobject.endswith(CUSTOM_METADATA_SUFFIX) else field_metadata_filter
    fields = [_build_field(field) for field in raw_fields if field_filter(field)]
    logger.info(f"{sobject}: {len(fields)} of {len(raw_fields)} fields can be loaded")

    related_objects = []
    for field in fields:
        for reference_to in field.reference_to or []:
            if reference_to not in related_objects:
                related_objects.append(reference_to)

    if not related_objects:
        return fields

    query_result = await gateway.query(get_external_id_fields_query(related_objects))
    related_fields_by_object = _group_related_fields(query_result.get('records', []))

    output = []
    for field in fields:
        if field.reference_to:
            related_fields = OrderedDict(
                (reference_to, related_fields_by_object[reference_to])
                for reference_to in field.reference_to
                if reference_to in related_fields_by_object
            )
            if related_fields:
                field = field.model_copy(update={'related_fields': related_fields})
        output.append(field)
    return output
