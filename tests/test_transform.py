"""
Unit tests for record transformation.
"""

from datetime import date

import pytest

from data_loader.config import BULK_API_NULL_VALUE, ApiMode, LoadOptions
from data_loader.mapping import auto_map_fields, update_field_mapping
from data_loader.models import FieldDescriptor
from data_loader.related_records import EXPLICIT_NULL
from data_loader.transform import transform_data, transform_value


@pytest.fixture
def contact_fields(account_fields, polymorphic_field):
    return [
        FieldDescriptor(name='LastName', label='Last Name', type='string'),
        FieldDescriptor(name='Birthdate', label='Birthdate', type='date'),
        FieldDescriptor(name='HasOptedOutOfEmail', label='Email Opt Out', type='boolean'),
        account_fields[2],
        polymorphic_field,
    ]


def transform_one(row, fields, **options):
    mapping = auto_map_fields(list(row), fields)
    return transform_data([row], mapping, 'Contact', LoadOptions(**options))[0]


class TestNullPolicy:
    def test_batch_without_insert_nulls_omits_field(self, contact_fields):
        record = transform_one({'LastName': 'Smith', 'Birthdate': ''}, contact_fields, api_mode=ApiMode.BATCH)

        assert record == {'attributes': {'type': 'Contact'}, 'LastName': 'Smith'}

    def test_batch_with_insert_nulls(self, contact_fields):
        record = transform_one({'LastName': 'Smith', 'Birthdate': ''}, contact_fields,
                               api_mode=ApiMode.BATCH, insert_nulls=True)

        assert 'Birthdate' in record
        assert record['Birthdate'] is None

    def test_streaming_with_insert_nulls(self, contact_fields):
        record = transform_one({'LastName': 'Smith', 'Birthdate': None}, contact_fields,
                               api_mode=ApiMode.STREAMING, insert_nulls=True)

        assert record == {'LastName': 'Smith', 'Birthdate': BULK_API_NULL_VALUE}

    def test_streaming_without_insert_nulls_keeps_blank(self, contact_fields):
        record = transform_one({'LastName': 'Smith', 'Birthdate': ''}, contact_fields, api_mode=ApiMode.STREAMING)

        assert record == {'LastName': 'Smith', 'Birthdate': ''}

    def test_explicit_null_is_always_sent(self, contact_fields):
        record = transform_one({'LastName': 'Smith', 'Account.Name': EXPLICIT_NULL}, contact_fields, api_mode=ApiMode.BATCH)

        assert 'AccountId' in record
        assert record['AccountId'] is None


class TestLookups:
    def test_batch_external_id(self, contact_fields):
        record = transform_one({'Account.External_Id__c': 'EXT-1'}, contact_fields, api_mode=ApiMode.BATCH)

        assert record == {'attributes': {'type': 'Contact'}, 'Account': {'External_Id__c': 'EXT-1'}}

    def test_batch_polymorphic_external_id(self, contact_fields):
        record = transform_one({'What.Legacy_Id__c': 'L-1'}, contact_fields, api_mode=ApiMode.BATCH)

        assert record['What'] == {'attributes': {'type': 'Opportunity'}, 'Legacy_Id__c': 'L-1'}

    def test_streaming_external_id(self, contact_fields):
        record = transform_one({'Account.External_Id__c': 'EXT-1', 'What.Legacy_Id__c': 'L-1'}, contact_fields,
                               api_mode=ApiMode.STREAMING)

        assert record == {'Account.External_Id__c': 'EXT-1', 'Opportunity:What.Legacy_Id__c': 'L-1'}

    def test_resolved_lookup_uses_target_field(self, contact_fields):
        record = transform_one({'Account.Name': '001000000000001'}, contact_fields, api_mode=ApiMode.STREAMING)

        assert record == {'AccountId': '001000000000001'}


def test_unmapped_columns_are_skipped(contact_fields):
    record = transform_one({'Unknown': 'x', 'LastName': 'Smith'}, contact_fields, api_mode=ApiMode.BATCH)

    assert record == {'attributes': {'type': 'Contact'}, 'LastName': 'Smith'}


def test_rows_keep_order(contact_fields):
    mapping = auto_map_fields(['LastName'], contact_fields)
    rows = [{'LastName': name} for name in ['a', 'b', 'c']]

    records = transform_data(rows, mapping, 'Contact', LoadOptions(api_mode=ApiMode.STREAMING))

    assert [record['LastName'] for record in records] == ['a', 'b', 'c']


def test_values_are_coerced(contact_fields):
    record = transform_one({'Birthdate': '12/31/1990', 'Email Opt Out': 'yes'}, contact_fields,
                           api_mode=ApiMode.STREAMING)

    assert record == {'Birthdate': '1990-12-31', 'HasOptedOutOfEmail': True}


def test_retargeted_column_uses_new_field_type(contact_fields):
    fields = contact_fields + [FieldDescriptor(name='Description', label='Description', type='textarea')]
    mapping = auto_map_fields(['Birthdate'], fields)
    mapping = update_field_mapping(mapping, 'Birthdate', fields, target_field='Description')

    records = transform_data([{'Birthdate': '12/31/1990'}], mapping, 'Contact', LoadOptions(api_mode=ApiMode.STREAMING))

    assert records == [{'Description': '12/31/1990'}]


class TestTransformValue:
    @pytest.mark.parametrize("value,date_format,expected", [
        ('12/31/1990', 'MM/DD/YYYY', '1990-12-31'),
        ('31/12/1990', 'DD/MM/YYYY', '1990-12-31'),
        ('02/03/2020', 'DD/MM/YYYY', '2020-03-02'),
        ('1990-12-31', 'MM/DD/YYYY', '1990-12-31'),
        (date(2021, 5, 4), 'MM/DD/YYYY', '2021-05-04'),
    ])
    def test_date(self, value, date_format, expected):
        assert transform_value(value, 'date', date_format) == expected

    def test_datetime(self):
        assert transform_value('2021-05-04T10:11:12Z', 'datetime') == '2021-05-04T10:11:12.000+00:00'
        assert transform_value('2021-05-04 10:11:12', 'datetime') == '2021-05-04T10:11:12.000+00:00'

    def test_invalid_date_is_unchanged(self):
        assert transform_value('not a date', 'date') == 'not a date'

    def test_time(self):
        assert transform_value('13:45', 'time') == '13:45:00.000Z'
        assert transform_value('1:45 PM', 'time') == '13:45:00.000Z'

    @pytest.mark.parametrize("value,expected", [
        ('TRUE', True), ('y', True), ('1', True), ('false', False), ('No', False), ('maybe', 'maybe'),
    ])
    def test_boolean(self, value, expected):
        assert transform_value(value, 'boolean') == expected

    def test_other_types_pass_through(self):
        assert transform_value('1,000', 'double') == '1,000'
        assert transform_value('', 'date') == ''
        assert transform_value(None, 'date') is None
