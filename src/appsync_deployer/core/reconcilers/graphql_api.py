"""
GraphQL API container: resolve by recorded id, then by name, else create.

An existing API whose input subset differs from the desired one is updated.
"""
from __future__ import annotations

from typing import Optional, Tuple

from ..appsync_client import AppSyncProvider
from ..diff_engine import keyed_equals
from ..errors import NotFoundError
from ..models import DesiredConfig
from .base import Logger, Resource


def find_graphql_api(
    client: AppSyncProvider,
    desired: DesiredConfig,
    api_id: Optional[str],
    log: Logger,
) -> Optional[Resource]:
    """Return the existing API, looked up by ``api_id`` then by name."""
    if api_id:
        log.debug("Fetching graphql API by API id %s", api_id)
        try:
            return client.get_graphql_api(api_id)
        except NotFoundError:
            log.info("API id '%s' not found", api_id)

    log.debug("Fetching graphql API by API name %s", desired.name)
    for api in client.list_graphql_apis():
        if api.get("name") == desired.name:
            return api
    return None


def create_or_update_graphql_api(
    client: AppSyncProvider,
    desired: DesiredConfig,
    api_id: Optional[str],
    log: Logger,
) -> Tuple[Resource, bool]:
    """Converge the API container; returns ``(api, created_this_run)``."""
    inputs = desired.api_inputs()
    api = find_graphql_api(client, desired, api_id, log)

    if api is None:
        log.info("Creating a new graphql API %s", desired.name)
        return client.create_graphql_api(inputs), True

    if not keyed_equals(desired.api_input_fields(), inputs, api):
        log.info("Updating graphql API %s", api["apiId"])
        return client.update_graphql_api(api["apiId"], inputs), False

    log.debug("Graphql API %s unchanged", api["apiId"])
    return api, False


def delete_graphql_api(client: AppSyncProvider, api_id: Optional[str], log: Logger) -> None:
    if not api_id:
        return
    log.info("Removing graphql API %s", api_id)
    try:
        client.delete_graphql_api(api_id)
    except NotFoundError:
        log.info("Graphql API %s already removed", api_id)
