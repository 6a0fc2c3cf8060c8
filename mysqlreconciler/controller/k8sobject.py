# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/

from typing import Optional

import datetime

g_component = None
g_host = None


class EventRecorder:
    """
    Posts core/v1 Events about objects we manage.
    """

    def __init__(self, api_core, component: Optional[str] = None,
                 host: Optional[str] = None,
                 request_timeout: Optional[float] = None) -> None:
        self.api_core = api_core
        self.component = component or g_component
        self.host = host or g_host
        self.request_timeout = request_timeout

    def post_event(self, namespace: str, object_ref: dict, type: str,
                   action: str, reason: str, message: str) -> None:
        if len(message) > 1024:
            message = message[:1024]

        body = {
            # What action was taken/failed regarding to the regarding object.
            'action': action,

            'eventTime': datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None).isoformat()+"Z",

            'involvedObject': object_ref,

            'message': message,
            'metadata': {
                'namespace': namespace,
                'generateName': 'mysqlreconciler-evt-',
            },

            # This should be a short, machine understandable string that gives the
            # reason for the transition into the object's current status.
            'reason': reason,

            'reportingComponent': f'kubedb.com/mysqlreconciler-{self.component}',
            'reportingInstance': f'{self.host}',

            'source': {
                'component': self.component,
                'host': self.host
            },

            'type': type
        }
        self.api_core.create_namespaced_event(
            namespace, body, _request_timeout=self.request_timeout)

    def event(self, obj: 'K8sInterfaceObject', type: str, reason: str,
              message: str, action: str = "Reconcile") -> None:
        self.post_event(obj.namespace, obj.self_ref(), type=type,
                        action=action, reason=reason, message=message)


class K8sInterfaceObject:
    """
    Base class for objects meant to interface with Kubernetes.
    """

    def __init__(self) -> None:
        pass

    @property
    def name(self) -> str:
        raise NotImplementedError()

    @property
    def namespace(self) -> str:
        raise NotImplementedError()

    def self_ref(self, field: Optional[str] = None) -> dict:
        raise NotImplementedError()
