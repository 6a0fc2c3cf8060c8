# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import Callable, Optional, TypeVar
from kubernetes.client.rest import ApiException
from kubernetes import client, config

T = TypeVar("T")


class KubeApis:
    """
    The API handles used by the controllers. Passed around explicitly so
    that tests can substitute fakes.
    """

    def __init__(self, core, customobj) -> None:
        self.core = core
        self.customobj = customobj


def load_config() -> None:
    try:
        # outside k8s
        config.load_kube_config()
    except config.config_exception.ConfigException:
        try:
            # inside a k8s pod
            config.load_incluster_config()
        except config.config_exception.ConfigException:
            raise Exception(
                "Could not configure kubernetes python client")


def connect() -> KubeApis:
    load_config()
    api_client = client.ApiClient()
    return KubeApis(core=client.CoreV1Api(api_client),
                    customobj=client.CustomObjectsApi(api_client))


def catch_404(f: Callable[..., T]) -> Optional[T]:
    try:
        return f()
    except ApiException as e:
        if e.status == 404:
            return None
        raise
