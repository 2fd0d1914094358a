"""
Resolvers (mapping templates): natural key ``(typeName, fieldName)``.

Remote resolvers are listed per GraphQL type referenced by the desired
configuration; a type unknown to the API yields an empty listing.
"""
from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence

from ..errors import NotFoundError
from ..models import ResolverSpec
from ..templates import read_if_file
from .base import BaseReconciler, Resource


class ResolverReconciler(BaseReconciler):
    kind = "resolver"
    natural_key = ("typeName", "fieldName")
    compare_keys = (
        "dataSourceName",
        "kind",
        "pipelineConfig",
        "requestMappingTemplate",
        "responseMappingTemplate",
    )
    state_key = ("type", "field")
    id_field = "resolverArn"

    def fetch_remote(self, desired: Sequence[Resource]) -> List[Resource]:
        remote: List[Resource] = []
        for type_name in dict.fromkeys(item["typeName"] for item in desired):
            try:
                remote.extend(self.client.list_resolvers(self.ctx.api_id, type_name))
            except NotFoundError:
                self.log.debug("Type %s not found on %s", type_name, self.ctx.api_id)
        return remote

    def to_desired(self, spec: ResolverSpec) -> Resource:
        item: Resource = {
            "typeName": spec.type,
            "fieldName": spec.field,
            "kind": spec.kind,
            "requestMappingTemplate": read_if_file(spec.request, self.ctx.src),
            "responseMappingTemplate": read_if_file(spec.response, self.ctx.src),
        }
        if spec.kind == "PIPELINE":
            item["pipelineConfig"] = {"functions": list(spec.functions)}
        else:
            item["dataSourceName"] = spec.data_source
        return item

    def create(self, item: Resource) -> Resource:
        return self.client.create_resolver(self.ctx.api_id, self.params(item))

    def update(self, item: Resource, identifier: Optional[str]) -> Resource:
        return self.client.update_resolver(self.ctx.api_id, self.params(item))

    def delete(self, prior_item: Mapping[str, Any]) -> None:
        self.client.delete_resolver(self.ctx.api_id, prior_item["type"], prior_item["field"])

    def state_of(self, spec: ResolverSpec) -> Resource:
        return {"type": spec.type, "field": spec.field}

    def to_state(self, item: Resource) -> Resource:
        return {"type": item["typeName"], "field": item["fieldName"]}
