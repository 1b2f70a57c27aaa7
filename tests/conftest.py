"""
Shared test fixtures.

FakeGateway stands in for SalesforceGateway: describe results come from a dict
and queries are answered by a callable, every query is recorded.
"""

import asyncio
import re
from typing import Callable, Dict, List, Optional

import pytest

from data_loader.models import FieldDescriptor, RelatedField


class FakeGateway:
    def __init__(self, describes: Optional[Dict[str, dict]] = None,
                 responder: Optional[Callable[[str], dict]] = None):
        self.describes = describes or {}
        self.responder = responder or (lambda soql: {'records': []})
        self.queries: List[str] = []

    @property
    def api_version(self) -> str:
        return "v58.0"

    async def describe(self, sobject: str) -> dict:
        return self.describes[sobject]

    async def query(self, soql: str) -> dict:
        self.queries.append(soql)
        return self.responder(soql)


def records_for_in_clause(field: str, ids_by_value: Dict[str, List[str]]) -> Callable[[str], dict]:
    """Answer a related record query with the records for the values in its IN clause."""
    def responder(soql: str) -> dict:
        in_clause = re.search(r"IN \((.*)\)$", soql).group(1)
        values = [
            re.sub(r"\\(.)", lambda m: '\n' if m.group(1) == 'n' else m.group(1), value)
            for value in re.findall(r"'((?:[^'\\]|\\.)*)'", in_clause)
        ]
        records = []
        for value in values:
            for record_id in ids_by_value.get(value, []):
                records.append({'attributes': {'type': 'Account'}, 'Id': record_id, field: value})
        return {'totalSize': len(records), 'done': True, 'records': records}
    return responder


def run(coro):
    return asyncio.run(coro)


# ===================
# FIELD FIXTURES
# ===================

def describe_field(name, label=None, type='string', soap_type='xsd:string', createable=True, updateable=True,
                   custom=False, external_id=False, reference_to=None, relationship_name=None):
    return {
        'name': name,
        'label': label or name,
        'type': type,
        'soapType': soap_type,
        'createable': createable,
        'updateable': updateable,
        'custom': custom,
        'externalId': external_id,
        'typeLabel': type.title(),
        'referenceTo': reference_to or [],
        'relationshipName': relationship_name,
    }


@pytest.fixture
def contact_describe():
    return {
        'name': 'Contact',
        'fields': [
            describe_field('Id', type='id', soap_type='tns:ID', createable=False, updateable=False),
            describe_field('LastName', 'Last Name'),
            describe_field('Email', type='email'),
            describe_field('Birthdate', type='date', soap_type='xsd:date'),
            describe_field('AccountId', 'Account ID', type='reference', soap_type='tns:ID',
                           reference_to=['Account'], relationship_name='Account'),
            describe_field('OwnerId', 'Owner ID', type='reference', soap_type='tns:ID',
                           reference_to=['Group', 'User'], relationship_name='Owner'),
            describe_field('CreatedDate', type='datetime', createable=False, updateable=False),
        ],
    }


@pytest.fixture
def account_fields():
    """Name plus an Account lookup with a Name field and an external id field on the related object."""
    return [
        FieldDescriptor(name='Name', label='Account Name', type='string'),
        FieldDescriptor(name='Type', label='Account Type', type='picklist'),
        FieldDescriptor(
            name='AccountId',
            label='Account ID',
            type='reference',
            reference_to=['Account'],
            relationship_name='Account',
            related_fields={
                'Account': [
                    RelatedField(name='Name', label='Account Name', type='string'),
                    RelatedField(name='External_Id__c', label='External Id', type='string', is_external_id=True),
                ]
            },
        ),
    ]


@pytest.fixture
def polymorphic_field():
    return FieldDescriptor(
        name='WhatId',
        label='Related To ID',
        type='reference',
        reference_to=['Account', 'Opportunity'],
        relationship_name='What',
        related_fields={
            'Account': [RelatedField(name='Name', label='Account Name', type='string')],
            'Opportunity': [
                RelatedField(name='Name', label='Name', type='string'),
                RelatedField(name='Legacy_Id__c', label='Legacy Id', type='string', is_external_id=True),
            ],
        },
    )
