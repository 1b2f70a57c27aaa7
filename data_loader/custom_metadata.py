"""
Load custom metadata records (objects ending in __mdt).

Custom metadata records cannot be written with the data APIs, so each row is
converted to a CustomMetadata document and packaged for a metadata deploy.
"""

import io
import logging
import zipfile
from typing import Dict, List, Optional
from xml.sax.saxutils import escape, quoteattr

from .config import CUSTOM_FIELD_SUFFIX, CUSTOM_METADATA_SUFFIX, DEFAULT_DATE_FORMAT
from .exceptions import MappingError
from .models import CustomMetadataRecord, FieldDescriptor, FieldMapping, FieldMappingItem
from .related_records import is_empty
from .transform import transform_value

logger = logging.getLogger(__name__)


def _xml_value(value) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return escape(str(value))


def convert_csv_to_custom_metadata(sobject: str, rows: List[dict], fields: List[FieldDescriptor],
                                   field_mapping: FieldMapping,
                                   date_format: Optional[str] = DEFAULT_DATE_FORMAT) -> Dict[str, CustomMetadataRecord]:
    """
    Build one CustomMetadata document per DeveloperName.

    Every custom field is written, fields without a value are written as nil.
    Lookups on custom metadata always relate records by name, so ID values are
    written as strings.
    """
    type_name = sobject.replace(CUSTOM_METADATA_SUFFIX, '')
    mapping_by_target_field: Dict[str, FieldMappingItem] = {
        item.target_field: item for item in field_mapping.values() if item.target_field
    }
    if 'DeveloperName' not in mapping_by_target_field:
        raise MappingError("DeveloperName must be mapped to load custom metadata records")

    custom_fields = [field for field in fields if field.name.endswith(CUSTOM_FIELD_SUFFIX)]
    label_mapping = mapping_by_target_field.get('Label')
    metadata_by_full_name: Dict[str, CustomMetadataRecord] = {}

    for row in rows:
        full_name = f"{type_name}.{row.get(mapping_by_target_field['DeveloperName'].csv_field)}"
        label = row.get(label_mapping.csv_field) if label_mapping else None
        if is_empty(label):
            label = None
        record = {'DeveloperName': full_name, 'Label': label}

        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<CustomMetadata xmlns="http://soap.sforce.com/2006/04/metadata" '
            'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" xmlns:xsd="http://www.w3.org/2001/XMLSchema">',
        ]
        if label:
            lines.append(f"\t<label>{_xml_value(label)}</label>")
        lines.append("\t<protected>false</protected>")

        for field in custom_fields:
            item = mapping_by_target_field.get(field.name)
            value = row.get(item.csv_field) if item else None
            value = transform_value(value, field.type, date_format or DEFAULT_DATE_FORMAT)
            soap_type = 'xsd:string' if field.soap_type == 'tns:ID' else (field.soap_type or 'xsd:string')
            lines.append("\t<values>")
            lines.append(f"\t\t<field>{field.name}</field>")
            if item and not is_empty(value):
                lines.append(f"\t\t<value xsi:type={quoteattr(soap_type)}>{_xml_value(value)}</value>")
                record[field.name] = value
            else:
                lines.append('\t\t<value xsi:nil="true"/>')
                record[field.name] = None
            lines.append("\t</values>")
        lines.append("</CustomMetadata>")

        metadata_by_full_name[full_name] = CustomMetadataRecord(full_name=full_name, record=record, metadata='\n'.join(lines))

    logger.info(f"Converted {len(rows)} rows to {len(metadata_by_full_name)} {sobject} records")
    return metadata_by_full_name


def build_package_xml(api_version: str, full_names: List[str]) -> str:
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<Package xmlns="http://soap.sforce.com/2006/04/metadata">',
        '\t<types>',
        *(f"\t\t<members>{escape(full_name)}</members>" for full_name in full_names),
        '\t\t<name>CustomMetadata</name>',
        '\t</types>',
        f"\t<version>{api_version.replace('v', '')}</version>",
        '</Package>',
    ]
    return '\n'.join(lines)


def prepare_custom_metadata(api_version: str, metadata: Dict[str, CustomMetadataRecord]) -> bytes:
    """Zip package.xml and one customMetadata/<fullName>.md file per record."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zipf:
        zipf.writestr('package.xml', build_package_xml(api_version, list(metadata)))
        for full_name, custom_metadata in metadata.items():
            zipf.writestr(f"customMetadata/{full_name}.md", custom_metadata.metadata)
    return buffer.getvalue()
