"""In-memory AppSync / IAM providers shared by the test modules."""
import threading
from collections import Counter

import pytest

from appsync_deployer.core.appsync_client import Clients
from appsync_deployer.core.errors import NotFoundError, ProviderError

ACCOUNT_ID = "123456789012"


class FakeAppSync:
    """AppSync double; like the service it keeps api key expiry rounded down to the hour."""

    def __init__(self, schema_statuses=None):
        self._lock = threading.Lock()
        self.calls = Counter()
        self.apis = {}
        self.data_sources = {}
        self.resolvers = {}
        self.functions = {}
        self.api_keys = {}
        self.schemas = {}
        self.schema_statuses = list(schema_statuses or ["SUCCESS"])
        self._seq = 0

    def _next(self, prefix):
        with self._lock:
            self._seq += 1
            return f"{prefix}{self._seq}"

    def _record(self, method):
        with self._lock:
            self.calls[method] += 1

    def _api(self, api_id):
        if api_id not in self.apis:
            raise NotFoundError("get_graphql_api", "NotFoundException", f"API {api_id} not found")
        return self.apis[api_id]

    # ----- graphql api -----
    def get_graphql_api(self, api_id):
        self._record("get_graphql_api")
        return dict(self._api(api_id))

    def list_graphql_apis(self):
        self._record("list_graphql_apis")
        return [dict(a) for a in self.apis.values()]

    def create_graphql_api(self, inputs):
        self._record("create_graphql_api")
        api_id = self._next("api")
        api = {
            **inputs,
            "apiId": api_id,
            "arn": f"arn:aws:appsync:us-east-1:{ACCOUNT_ID}:apis/{api_id}",
            "uris": {"GRAPHQL": f"https://{api_id}.appsync-api.us-east-1.amazonaws.com/graphql"},
        }
        self.apis[api_id] = api
        self.data_sources[api_id] = {}
        self.resolvers[api_id] = {}
        self.functions[api_id] = {}
        self.api_keys[api_id] = {}
        return dict(api)

    def update_graphql_api(self, api_id, inputs):
        self._record("update_graphql_api")
        api = self._api(api_id)
        api.update(inputs)
        return dict(api)

    def delete_graphql_api(self, api_id):
        self._record("delete_graphql_api")
        self._api(api_id)
        del self.apis[api_id]

    # ----- data sources -----
    def list_data_sources(self, api_id):
        self._record("list_data_sources")
        return [dict(d) for d in self.data_sources[api_id].values()]

    def create_data_source(self, api_id, params):
        self._record("create_data_source")
        item = {**params, "dataSourceArn": f"arn:aws:appsync:::apis/{api_id}/datasources/{params['name']}"}
        self.data_sources[api_id][params["name"]] = item
        return dict(item)

    def update_data_source(self, api_id, params):
        self._record("update_data_source")
        current = self.data_sources[api_id][params["name"]]
        item = {**params, "dataSourceArn": current["dataSourceArn"]}
        self.data_sources[api_id][params["name"]] = item
        return dict(item)

    def delete_data_source(self, api_id, name):
        self._record("delete_data_source")
        if name not in self.data_sources[api_id]:
            raise NotFoundError("delete_data_source", "NotFoundException", name)
        del self.data_sources[api_id][name]

    # ----- resolvers -----
    def list_resolvers(self, api_id, type_name):
        self._record("list_resolvers")
        return [dict(r) for (t, _), r in self.resolvers[api_id].items() if t == type_name]

    def create_resolver(self, api_id, params):
        self._record("create_resolver")
        key = (params["typeName"], params["fieldName"])
        item = {**params, "resolverArn": f"arn:aws:appsync:::apis/{api_id}/types/{key[0]}/resolvers/{key[1]}"}
        self.resolvers[api_id][key] = item
        return dict(item)

    def update_resolver(self, api_id, params):
        self._record("update_resolver")
        key = (params["typeName"], params["fieldName"])
        item = {**params, "resolverArn": self.resolvers[api_id][key]["resolverArn"]}
        self.resolvers[api_id][key] = item
        return dict(item)

    def delete_resolver(self, api_id, type_name, field_name):
        self._record("delete_resolver")
        if (type_name, field_name) not in self.resolvers[api_id]:
            raise NotFoundError("delete_resolver", "NotFoundException", f"{type_name}.{field_name}")
        del self.resolvers[api_id][(type_name, field_name)]

    # ----- functions -----
    def list_functions(self, api_id):
        self._record("list_functions")
        return [dict(f) for f in self.functions[api_id].values()]

    def create_function(self, api_id, params):
        self._record("create_function")
        function_id = self._next("fn")
        item = {**params, "functionId": function_id}
        self.functions[api_id][function_id] = item
        return dict(item)

    def update_function(self, api_id, function_id, params):
        self._record("update_function")
        item = {**params, "functionId": function_id}
        self.functions[api_id][function_id] = item
        return dict(item)

    def delete_function(self, api_id, function_id):
        self._record("delete_function")
        if function_id not in self.functions[api_id]:
            raise NotFoundError("delete_function", "NotFoundException", function_id)
        del self.functions[api_id][function_id]

    # ----- api keys -----
    def list_api_keys(self, api_id):
        self._record("list_api_keys")
        return [dict(k) for k in self.api_keys[api_id].values()]

    def create_api_key(self, api_id, params):
        self._record("create_api_key")
        key_id = self._next("key")
        expires = params.get("expires") or 1800000000
        item = {"id": key_id, "description": params.get("description"), "expires": expires - expires % 3600}
        self.api_keys[api_id][key_id] = item
        return dict(item)

    def update_api_key(self, api_id, key_id, params):
        self._record("update_api_key")
        item = self.api_keys[api_id][key_id]
        item.update({k: v for k, v in params.items() if v is not None})
        if item.get("expires") is not None:
            item["expires"] -= item["expires"] % 3600
        return dict(item)

    def delete_api_key(self, api_id, key_id):
        self._record("delete_api_key")
        if key_id not in self.api_keys[api_id]:
            raise NotFoundError("delete_api_key", "NotFoundException", key_id)
        del self.api_keys[api_id][key_id]

    # ----- schema -----
    def start_schema_creation(self, api_id, definition):
        self._record("start_schema_creation")
        self.schemas[api_id] = definition
        return "PROCESSING"

    def get_schema_creation_status(self, api_id):
        self._record("get_schema_creation_status")
        if len(self.schema_statuses) > 1:
            status = self.schema_statuses.pop(0)
        else:
            status = self.schema_statuses[0]
        return {"status": status, "details": f"schema is {status.lower()}"}


class FakeIam:
    def __init__(self):
        self.calls = Counter()
        self.roles = {}
        self.policies = {}
        self.attachments = set()
        self._seq = 0

    def create_role(self, role_name, assume_role_policy):
        self.calls["create_role"] += 1
        if role_name in self.roles:
            raise ProviderError("create_role", "EntityAlreadyExists", role_name)
        arn = f"arn:aws:iam::{ACCOUNT_ID}:role/{role_name}"
        self.roles[role_name] = {"RoleName": role_name, "Arn": arn, "AssumeRolePolicyDocument": assume_role_policy}
        return arn

    def get_role(self, role_name):
        self.calls["get_role"] += 1
        if role_name not in self.roles:
            raise NotFoundError("get_role", "NoSuchEntity", role_name)
        return dict(self.roles[role_name])

    def create_policy(self, policy_name, document):
        self.calls["create_policy"] += 1
        arn = f"arn:aws:iam::{ACCOUNT_ID}:policy/{policy_name}"
        if arn in self.policies:
            raise ProviderError("create_policy", "EntityAlreadyExists", policy_name)
        self.policies[arn] = document
        return arn

    def get_policy(self, policy_arn):
        self.calls["get_policy"] += 1
        if policy_arn not in self.policies:
            raise NotFoundError("get_policy", "NoSuchEntity", policy_arn)
        return {"Arn": policy_arn}

    def update_policy(self, policy_arn, document):
        self.calls["update_policy"] += 1
        if policy_arn not in self.policies:
            raise NotFoundError("update_policy", "NoSuchEntity", policy_arn)
        self.policies[policy_arn] = document

    def attach_role_policy(self, role_name, policy_arn):
        self.calls["attach_role_policy"] += 1
        self.attachments.add((role_name, policy_arn))

    def detach_role_policy(self, role_name, policy_arn):
        self.calls["detach_role_policy"] += 1
        if (role_name, policy_arn) not in self.attachments:
            raise NotFoundError("detach_role_policy", "NoSuchEntity", policy_arn)
        self.attachments.discard((role_name, policy_arn))

    def delete_policy(self, policy_arn):
        self.calls["delete_policy"] += 1
        if policy_arn not in self.policies:
            raise NotFoundError("delete_policy", "NoSuchEntity", policy_arn)
        del self.policies[policy_arn]

    def delete_role(self, role_name):
        self.calls["delete_role"] += 1
        if role_name not in self.roles:
            raise NotFoundError("delete_role", "NoSuchEntity", role_name)
        del self.roles[role_name]


@pytest.fixture
def appsync():
    return FakeAppSync()


@pytest.fixture
def iam():
    return FakeIam()


@pytest.fixture
def clients(appsync, iam):
    return Clients(appsync=appsync, iam=iam, account_id=lambda: ACCOUNT_ID)


@pytest.fixture
def api_id(appsync):
    return appsync.create_graphql_api({"name": "fixture-api", "authenticationType": "API_KEY"})["apiId"]
