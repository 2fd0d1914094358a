"""
Pipeline functions: natural key ``(name, dataSourceName)``.

Deleting requires the provider-assigned ``functionId``, recovered from the
prior state.
"""
from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence

from ..models import FunctionSpec
from ..templates import read_if_file
from .base import BaseReconciler, Resource


class FunctionReconciler(BaseReconciler):
    kind = "function"
    natural_key = ("name", "dataSourceName")
    compare_keys = (
        "dataSourceName",
        "name",
        "description",
        "functionVersion",
        "requestMappingTemplate",
        "responseMappingTemplate",
    )
    state_key = ("name", "dataSource")
    id_field = "functionId"

    def fetch_remote(self, desired: Sequence[Resource]) -> List[Resource]:
        return self.client.list_functions(self.ctx.api_id)

    def to_desired(self, spec: FunctionSpec) -> Resource:
        return {
            "name": spec.name,
            "dataSourceName": spec.data_source,
            "description": spec.description,
            "functionVersion": spec.function_version,
            "requestMappingTemplate": read_if_file(spec.request, self.ctx.src),
            "responseMappingTemplate": read_if_file(spec.response, self.ctx.src),
        }

    def create(self, item: Resource) -> Resource:
        return self.client.create_function(self.ctx.api_id, self.params(item))

    def update(self, item: Resource, identifier: Optional[str]) -> Resource:
        return self.client.update_function(self.ctx.api_id, str(identifier), self.params(item))

    def delete(self, prior_item: Mapping[str, Any]) -> None:
        function_id = prior_item.get("functionId")
        if not function_id:
            self.log.warning("Function %s has no recorded functionId, skipping delete", prior_item.get("name"))
            return
        self.client.delete_function(self.ctx.api_id, function_id)

    def prior_identifier(self, prior_item: Mapping[str, Any]) -> Optional[str]:
        return prior_item.get("functionId")

    def state_of(self, spec: FunctionSpec) -> Resource:
        return {"name": spec.name, "dataSource": spec.data_source}

    def to_state(self, item: Resource) -> Resource:
        return {"name": item["name"], "dataSource": item["dataSourceName"], "functionId": item["functionId"]}
