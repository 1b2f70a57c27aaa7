"""
Configuration for the data loader.

Connection settings come from the environment (optionally a .env file at the
project root), per-run load options are a pydantic model passed by the caller.
"""

import os
from enum import Enum
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Bulk API value that clears a field (the Bulk API ignores empty strings)
BULK_API_NULL_VALUE = "#N/A"

CUSTOM_METADATA_SUFFIX = "__mdt"
CUSTOM_FIELD_SUFFIX = "__c"

# Limit number of related objects per reference field to keep the metadata query small
MAX_REFERENCE_TO = 5

# Related record lookups
QUERY_ITEM_BUFFER_LENGTH = 250
MAX_QUERY_LENGTH = 9500  # somewhere just over 10K the API starts rejecting queries

DEFAULT_API_VERSION = "v58.0"
DEFAULT_DATE_FORMAT = "MM/DD/YYYY"
DATE_FORMATS = ["MM/DD/YYYY", "DD/MM/YYYY", "YYYY-MM-DD"]


class ApiMode(str, Enum):
    """Write API the prepared rows are shaped for."""

    STREAMING = "STREAMING"  # Bulk API (CSV-like, flattened relationship keys)
    BATCH = "BATCH"  # sObject collections / composite API (JSON records)


class NoMatchPolicy(str, Enum):
    FAIL = "fail"
    NULLIFY = "nullify"


class MultipleMatchPolicy(str, Enum):
    FAIL = "fail"
    USE_FIRST = "useFirst"


class LoadOptions(BaseModel):
    """Options chosen by the caller for a single load."""

    api_mode: ApiMode = ApiMode.BATCH
    insert_nulls: bool = False
    date_format: str = Field(DEFAULT_DATE_FORMAT, description="Hint used to parse date strings")
    binary_body_field: Optional[str] = None


class ConnectionSettings(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    security_token: Optional[str] = None
    domain: str = "login"
    instance_url: Optional[str] = None
    session_id: Optional[str] = None
    api_version: str = DEFAULT_API_VERSION

    @property
    def has_credentials(self) -> bool:
        return all([self.username, self.password, self.security_token])

    @property
    def has_session(self) -> bool:
        return bool(self.instance_url and self.session_id)


def load_settings(env_path: Optional[str] = None) -> ConnectionSettings:
    """Load connection settings from the environment."""
    # Load .env from the project root or fall back to the default search
    if env_path is None:
        env_path = os.path.join(os.path.dirname(__file__), '..', '.env')
    if os.path.exists(env_path):
        load_dotenv(env_path)
    else:
        load_dotenv()

    return ConnectionSettings(
        username=os.getenv("SALESFORCE_USERNAME"),
        password=os.getenv("SALESFORCE_PASSWORD"),
        security_token=os.getenv("SALESFORCE_SECURITY_TOKEN"),
        domain=os.getenv("SALESFORCE_DOMAIN", "login"),
        instance_url=os.getenv("SALESFORCE_INSTANCE_URL"),
        session_id=os.getenv("SALESFORCE_SESSION_ID"),
        api_version=os.getenv("SALESFORCE_API_VERSION", DEFAULT_API_VERSION),
    )
