"""
Data Loader Package

Prepares tabular data for loading into Salesforce objects.

Python Modules:
    - schema: Loadable fields for an object, with related object lookup fields
    - mapping: Auto-map input columns to fields, duplicate detection
    - related_records: Resolve lookups on non external id fields to record ids
    - transform: Shape rows for the Bulk API or the collections API
    - custom_metadata: Convert rows to custom metadata records and a deploy package
    - load_records: Run lookup resolution and transformation together
    - cli: Command line entry point

Usage:
    python -m data_loader --object Contact --file contacts.csv
"""

__version__ = "1.0.0"

from .config import ApiMode, LoadOptions, MultipleMatchPolicy, NoMatchPolicy
from .custom_metadata import convert_csv_to_custom_metadata, prepare_custom_metadata
from .load_records import prepare_data
from .mapping import (
    auto_map_fields,
    check_for_duplicate_field_mappings,
    get_field_header_from_mapping,
    reset_field_mapping,
    update_field_mapping,
)
from .models import FieldDescriptor, FieldMappingItem, PrepareDataResult, RelatedField, RowError
from .related_records import RelatedRecordResolver, get_related_fields_queries
from .schema import get_field_metadata
from .transform import transform_data
