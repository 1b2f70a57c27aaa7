"""
Salesforce connection and the async gateway used by the load steps.

simple-salesforce is synchronous. Every call is pushed to a worker thread and
awaited, so the load steps issue one remote call at a time.
"""

import asyncio
import json
import logging
import subprocess
from typing import Dict, List, Optional, Tuple

from simple_salesforce import Salesforce

from .config import ConnectionSettings, DEFAULT_API_VERSION
from .exceptions import DataLoaderError

logger = logging.getLogger(__name__)


def _get_access_token_from_cli() -> Tuple[Optional[str], Optional[str]]:
    """Get access token and instance url for the default target-org from the Salesforce CLI."""
    try:
        result = subprocess.run(
            ['sf', 'org', 'display', '--json'],
            capture_output=True,
            text=True,
            check=True
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning(f"Could not get access token from Salesforce CLI: {e}")
        return None, None

    data = json.loads(result.stdout)
    access_token = data.get('result', {}).get('accessToken', '')
    instance_url = data.get('result', {}).get('instanceUrl', '')
    if access_token and instance_url:
        return access_token, instance_url
    return None, None


def connect(settings: ConnectionSettings) -> Salesforce:
    """Connect using username/password, then a session from the environment, then the Salesforce CLI."""
    version = settings.api_version.replace("v", "")
    if settings.has_credentials:
        logger.info(f"Connecting to Salesforce as {settings.username} ({settings.domain})")
        return Salesforce(
            username=settings.username,
            password=settings.password,
            security_token=settings.security_token,
            domain=settings.domain,
            version=version,
        )

    if settings.has_session:
        logger.info(f"Connecting to Salesforce using session for {settings.instance_url}")
        return Salesforce(instance_url=settings.instance_url, session_id=settings.session_id, version=version)

    logger.info("No username/password provided, trying access token from Salesforce CLI")
    access_token, instance_url = _get_access_token_from_cli()
    if not access_token:
        raise DataLoaderError("Missing credentials and no access token available from the Salesforce CLI")
    return Salesforce(instance_url=instance_url, session_id=access_token, version=version)


class SalesforceGateway:
    """Describe and query calls against one org, with describe results cached per object."""

    def __init__(self, sf: Salesforce):
        self.sf = sf
        self._describe_cache: Dict[str, dict] = {}

    @property
    def api_version(self) -> str:
        # simple-salesforce stores the full base_url with version
        # e.g. https://xxx.my.salesforce.com/services/data/v58.0/
        base_url_parts = self.sf.base_url.split('/services/data/')
        if len(base_url_parts) > 1 and base_url_parts[1]:
            return base_url_parts[1].split('/')[0]
        return DEFAULT_API_VERSION

    async def describe_global(self) -> List[dict]:
        result = await asyncio.to_thread(self.sf.describe)
        return result['sobjects']

    async def describe(self, sobject: str) -> dict:
        if sobject not in self._describe_cache:
            logger.debug(f"Describing {sobject}")
            self._describe_cache[sobject] = await asyncio.to_thread(getattr(self.sf, sobject).describe)
        return self._describe_cache[sobject]

    async def query(self, soql: str) -> dict:
        logger.debug(f"Query: {soql}")
        return await asyncio.to_thread(self.sf.query_all, soql)
