"""
Value types shared by the mapping, lookup and transform steps.

Every model is frozen. Edits are made by building a new instance with
``model_copy(update=...)`` so a field mapping can be re-checked for duplicates
without worrying about who else holds a reference to an item.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import MultipleMatchPolicy, NoMatchPolicy


class RelatedField(BaseModel):
    """A field on a related object that can be used to find a record by value."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    type: str
    is_external_id: bool = False


class FieldDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    type: str
    soap_type: Optional[str] = None
    external_id: bool = False
    type_label: Optional[str] = None
    reference_to: Optional[List[str]] = None
    relationship_name: Optional[str] = None
    # key missing: not resolved, empty list: resolved but nothing usable
    related_fields: Optional[Dict[str, List[RelatedField]]] = None

    @property
    def is_polymorphic(self) -> bool:
        return bool(self.reference_to) and len(self.reference_to) > 1


class FieldMappingItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    csv_field: str
    target_field: Optional[str] = None
    mapped_to_lookup: bool = False
    field_metadata: Optional[FieldDescriptor] = None
    relationship_name: Optional[str] = None
    target_lookup_field: Optional[str] = None
    related_field_metadata: Optional[RelatedField] = None
    selected_reference_to: Optional[str] = None
    on_no_match: NoMatchPolicy = NoMatchPolicy.FAIL
    on_multiple_matches: MultipleMatchPolicy = MultipleMatchPolicy.FAIL
    is_duplicate_mapped_field: bool = False
    is_binary_body_field: bool = False

    @property
    def is_external_id_lookup(self) -> bool:
        return bool(
            self.mapped_to_lookup
            and self.target_lookup_field
            and self.related_field_metadata is not None
            and self.related_field_metadata.is_external_id
        )

    @property
    def requires_related_lookup(self) -> bool:
        """Lookups on fields that are not external ids must be converted to record ids first."""
        return bool(
            self.mapped_to_lookup
            and self.related_field_metadata is not None
            and not self.related_field_metadata.is_external_id
        )


# csv header -> mapping item, in the same order as the input header
FieldMapping = Dict[str, FieldMappingItem]


class RowError(BaseModel):
    row_index: int
    record: Dict[str, Any]
    messages: List[str] = Field(default_factory=list)


class PrepareDataResult(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[RowError] = Field(default_factory=list)
    query_errors: List[str] = Field(default_factory=list)


class CustomMetadataRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: str
    record: Dict[str, Any]
    metadata: str
