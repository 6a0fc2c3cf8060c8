# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import copy
import itertools

import pytest
from kubernetes import client as api_client
from kubernetes.client.rest import ApiException


def not_found(what: str) -> ApiException:
    return ApiException(status=404, reason=f"{what} not found")


def merge_patch(target: dict, patch: dict) -> dict:
    for k, v in patch.items():
        if v is None:
            target.pop(k, None)
        elif isinstance(v, dict) and isinstance(target.get(k), dict):
            merge_patch(target[k], v)
        else:
            target[k] = copy.deepcopy(v)
    return target


class FakeCoreApi:
    """
    In-memory stand-in for CoreV1Api. Every mutating call is recorded in
    writes, events separately in events.
    """

    def __init__(self) -> None:
        self.pods = {}
        self.secrets = {}
        self.services = {}
        self.events = []
        self.writes = []
        self.request_timeouts = []
        self._rv = itertools.count(100)

    def _timeout(self, kwargs) -> None:
        self.request_timeouts.append(kwargs.get("_request_timeout"))

    def add_service(self, namespace, name, ingress=None) -> api_client.V1Service:
        svc = api_client.V1Service(
            metadata=api_client.V1ObjectMeta(name=name, namespace=namespace),
            status=api_client.V1ServiceStatus(
                load_balancer=api_client.V1LoadBalancerStatus(ingress=ingress)))
        self.services[(namespace, name)] = svc
        return svc

    def add_secret(self, namespace, name, owners=None, data=None) -> api_client.V1Secret:
        secret = api_client.V1Secret(
            metadata=api_client.V1ObjectMeta(name=name, namespace=namespace,
                                             resource_version=str(next(self._rv)),
                                             owner_references=owners),
            data=data)
        self.secrets[(namespace, name)] = secret
        return secret

    def read_namespaced_service(self, name, namespace, **kwargs):
        self._timeout(kwargs)
        if (namespace, name) not in self.services:
            raise not_found(f"service {name}")
        return self.services[(namespace, name)]

    def read_namespaced_secret(self, name, namespace, **kwargs):
        self._timeout(kwargs)
        if (namespace, name) not in self.secrets:
            raise not_found(f"secret {name}")
        return self.secrets[(namespace, name)]

    def patch_namespaced_secret(self, name, namespace, body, **kwargs):
        self._timeout(kwargs)
        secret = self.read_namespaced_secret(name, namespace)
        self.writes.append(("patch_secret", namespace, name, body))
        for op in body:
            if op["op"] == "test":
                assert op["path"] == "/metadata/resourceVersion"
                if op["value"] != secret.metadata.resource_version:
                    raise ApiException(status=422, reason="test failed")
            elif op["op"] == "add" and op["path"] == "/metadata/ownerReferences":
                secret.metadata.owner_references = [
                    api_client.V1OwnerReference(
                        api_version=ref["apiVersion"], kind=ref["kind"],
                        name=ref["name"], uid=ref["uid"],
                        controller=ref.get("controller"),
                        block_owner_deletion=ref.get("blockOwnerDeletion"))
                    for ref in op["value"]]
            else:
                raise AssertionError(f"unexpected patch op {op}")
        secret.metadata.resource_version = str(next(self._rv))
        return secret

    def patch_namespaced_pod(self, name, namespace, body, **kwargs):
        self._timeout(kwargs)
        pod = self.pods.get((namespace, name))
        if pod is None:
            raise not_found(f"pod {name}")
        self.writes.append(("patch_pod", namespace, name, body))
        labels = dict(pod.metadata.labels or {})
        merge_patch(labels, body["metadata"]["labels"])
        pod.metadata.labels = labels
        return pod

    def create_namespaced_event(self, namespace, body, **kwargs):
        self._timeout(kwargs)
        self.events.append(body)
        return body

    def list_namespaced_pod(self, namespace, **kwargs):
        self._timeout(kwargs)
        items = [pod for (ns, _), pod in self.pods.items() if ns == namespace]
        field_selector = kwargs.get("field_selector")
        if field_selector:
            name = field_selector.split("=", 1)[1]
            items = [pod for pod in items if pod.metadata.name == name]
        return api_client.V1PodList(
            metadata=api_client.V1ListMeta(resource_version=str(next(self._rv))),
            items=items)


class FakeCustomObjectsApi:
    def __init__(self) -> None:
        # (plural, namespace, name) -> object, namespace is None when cluster scoped
        self.objects = {}
        self.writes = []
        self._rv = itertools.count(1)
        self._uid = itertools.count(1)

    def put(self, plural, namespace, name, body=None) -> dict:
        obj = copy.deepcopy(body) if body else {}
        meta = obj.setdefault("metadata", {})
        meta.update({"name": name, "uid": f"uid-{plural}-{next(self._uid)}",
                     "resourceVersion": str(next(self._rv))})
        if namespace:
            meta["namespace"] = namespace
        self.objects[(plural, namespace, name)] = obj
        return obj

    def _get(self, plural, namespace, name) -> dict:
        if (plural, namespace, name) not in self.objects:
            raise not_found(f"{plural} {name}")
        return copy.deepcopy(self.objects[(plural, namespace, name)])

    def get_namespaced_custom_object(self, group, version, namespace, plural, name, **kwargs):
        return self._get(plural, namespace, name)

    def get_cluster_custom_object(self, group, version, plural, name, **kwargs):
        return self._get(plural, None, name)

    def create_namespaced_custom_object(self, group, version, namespace, plural, body, **kwargs):
        if (plural, namespace, body["metadata"]["name"]) in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        self.writes.append(("create", plural, namespace, body["metadata"]["name"]))
        return self.put(plural, namespace, body["metadata"]["name"], body)

    def patch_namespaced_custom_object(self, group, version, namespace, plural, name, body, **kwargs):
        obj = self.objects.get((plural, namespace, name))
        if obj is None:
            raise not_found(f"{plural} {name}")
        rv = (body.get("metadata") or {}).get("resourceVersion")
        if rv is not None and rv != obj["metadata"]["resourceVersion"]:
            raise ApiException(status=409, reason="Conflict")
        self.writes.append(("patch", plural, namespace, name, copy.deepcopy(body)))
        merge_patch(obj, body)
        obj["metadata"]["resourceVersion"] = str(next(self._rv))
        return copy.deepcopy(obj)


def make_pod(name, namespace="ns", labels=None, pod_ip="10.0.0.1",
             resource_version="1") -> api_client.V1Pod:
    return api_client.V1Pod(
        metadata=api_client.V1ObjectMeta(name=name, namespace=namespace,
                                         labels=labels,
                                         resource_version=resource_version),
        spec=api_client.V1PodSpec(containers=[], subdomain="db-0-pods"),
        status=api_client.V1PodStatus(pod_ip=pod_ip))


def make_mysql(name="db-0", namespace="ns", issuer_kind="Issuer",
               issuer_name="ca-issuer", certificate=None) -> dict:
    tls = {
        "issuerRef": {
            "name": issuer_name,
            "kind": issuer_kind,
            "apiGroup": "cert-manager.io"
        }
    }
    if certificate:
        tls["certificate"] = certificate
    return {
        "apiVersion": "kubedb.com/v1alpha1",
        "kind": "MySQL",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"uid-{name}",
            "resourceVersion": "1",
            "labels": {"app.kubernetes.io/instance": name}
        },
        "spec": {
            "replicas": 3,
            "tls": tls
        }
    }


@pytest.fixture
def core_api() -> FakeCoreApi:
    return FakeCoreApi()


@pytest.fixture
def customobj_api() -> FakeCustomObjectsApi:
    return FakeCustomObjectsApi()


class FakeMySQL:
    """
    Session factory for ReplicationPrimaryProbe. primary is the MEMBER_HOST
    returned by the query, None for an empty result, or an exception to raise.
    """

    def __init__(self, primary=None, connect_error=None) -> None:
        self.primary = primary
        self.connect_error = connect_error
        self.connects = []
        self.queries = []

    def __call__(self, **kwargs) -> 'FakeMySQL':
        self.connects.append(kwargs)
        if self.connect_error:
            raise self.connect_error
        return self

    def query_sql(self, query, params=None) -> list:
        self.queries.append(query)
        if isinstance(self.primary, Exception):
            raise self.primary
        if self.primary is None:
            return []
        return [(self.primary,)]

    def close(self) -> None:
        pass

    def __enter__(self) -> 'FakeMySQL':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
