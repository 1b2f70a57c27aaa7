#!/usr/bin/env python3
"""
Prepare a CSV file for loading into a Salesforce object.

This script:
1. Reads the CSV file
2. Describes the object and auto-maps columns to fields
3. Resolves lookups that are not mapped to an external id
4. Writes the prepared records (JSON), or a deploy package (zip) for custom metadata

Usage:
    python -m data_loader --object Contact --file contacts.csv [--api-mode STREAMING] [--insert-nulls]
    python -m data_loader --object Setting__mdt --file settings.csv --output settings.zip
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime
from typing import List, Optional

import pandas as pd

from .config import CUSTOM_METADATA_SUFFIX, DATE_FORMATS, DEFAULT_DATE_FORMAT, ApiMode, LoadOptions, load_settings
from .connection import SalesforceGateway, connect
from .custom_metadata import convert_csv_to_custom_metadata, prepare_custom_metadata
from .exceptions import DataLoaderError
from .load_records import prepare_data, rows_from_dataframe
from .mapping import auto_map_fields
from .models import FieldMapping
from .related_records import EXPLICIT_NULL
from .schema import filter_load_sobjects, get_field_metadata

logger = logging.getLogger(__name__)


def setup_logging(log_dir: str = os.path.join('logs', 'data_loader')) -> str:
    """Log to the console and to a timestamped file."""
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_path = os.path.join(log_dir, f"load_{timestamp}.log")
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_path, encoding='utf-8'),
            logging.StreamHandler()
        ]
    )
    return log_path


def json_default(value):
    """Serialize values json cannot handle, the explicit null marker is written as null."""
    if value is EXPLICIT_NULL:
        return None
    return str(value)


def print_mapping(field_mapping: FieldMapping):
    print(f"\n{'='*60}")
    print("Field Mapping")
    print(f"{'='*60}")
    for item in field_mapping.values():
        if not item.target_field:
            target = "(not mapped)"
        elif item.mapped_to_lookup:
            target = f"{item.target_field} -> {item.selected_reference_to}.{item.target_lookup_field}"
        else:
            target = item.target_field
        duplicate = "  [DUPLICATE]" if item.is_duplicate_mapped_field else ""
        print(f"  {item.csv_field:30s} {target}{duplicate}")
    print(f"{'='*60}\n")


async def run(args: argparse.Namespace) -> int:
    settings = load_settings()
    gateway = SalesforceGateway(connect(settings))

    sobjects = {sobject['name']: sobject for sobject in await gateway.describe_global()}
    if args.object not in sobjects or not filter_load_sobjects(sobjects[args.object]):
        raise DataLoaderError(f"Records cannot be loaded into {args.object}")

    df = pd.read_csv(args.file, dtype=str, keep_default_na=False)
    rows = rows_from_dataframe(df)
    print(f"Read {len(rows)} rows from {args.file}")

    fields = await get_field_metadata(gateway, args.object)
    field_mapping = auto_map_fields(list(df.columns), fields, args.binary_body_field)
    print_mapping(field_mapping)

    if args.object.endswith(CUSTOM_METADATA_SUFFIX):
        metadata = convert_csv_to_custom_metadata(args.object, rows, fields, field_mapping, args.date_format)
        output = args.output or f"{args.object}.zip"
        with open(output, 'wb') as f:
            f.write(prepare_custom_metadata(gateway.api_version, metadata))
        print(f"✅ Wrote {len(metadata)} custom metadata records to {output}")
        return 0

    options = LoadOptions(
        api_mode=ApiMode(args.api_mode),
        insert_nulls=args.insert_nulls,
        date_format=args.date_format,
        binary_body_field=args.binary_body_field,
    )
    result = await prepare_data(
        gateway, rows, args.object, field_mapping, options,
        on_progress=lambda progress: logger.info(f"Resolving related records: {progress:.0f}%")
    )

    output = args.output or f"{args.object}.json"
    with open(output, 'w', encoding='utf-8') as f:
        json.dump(result.model_dump(), f, indent=2, default=json_default)

    print(f"✅ Prepared {len(result.rows)} records, written to {output}")
    if result.errors:
        print(f"⚠️  {len(result.errors)} rows skipped:")
        for error in result.errors:
            print(f"   Row {error.row_index + 1}: {' '.join(error.messages)}")
    for query_error in result.query_errors:
        print(f"❌ Query failed: {query_error}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Prepare CSV data for loading into Salesforce"
    )
    parser.add_argument("--object", type=str, required=True, help="API name of the object to load")
    parser.add_argument("--file", type=str, required=True, help="CSV file to load")
    parser.add_argument(
        "--api-mode",
        type=str,
        default=ApiMode.BATCH.value,
        choices=[mode.value for mode in ApiMode],
        help="Write API the records are prepared for"
    )
    parser.add_argument("--insert-nulls", action="store_true", help="Clear fields for blank values")
    parser.add_argument("--date-format", type=str, default=DEFAULT_DATE_FORMAT, choices=DATE_FORMATS)
    parser.add_argument("--binary-body-field", type=str, default=None, help="Field holding file content")
    parser.add_argument("--output", type=str, default=None, help="Output file")

    args = parser.parse_args(argv)
    log_path = setup_logging()
    logger.info(f"Load session started - Log file: {log_path}")

    try:
        return asyncio.run(run(args))
    except DataLoaderError as e:
        logger.error(str(e))
        print(f"\n❌ Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
