# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger, getLogger
from typing import Callable, Dict, List, Optional
import threading
import time

from kubernetes import client as api_client, watch
from kubernetes.client.rest import ApiException

from .. import utils

PodCallback = Callable[[api_client.V1Pod], None]
PodUpdateCallback = Callable[[api_client.V1Pod, api_client.V1Pod], None]


def pod_key(pod: api_client.V1Pod) -> str:
    return utils.meta_namespace_key(pod.metadata.namespace, pod.metadata.name)


class EventHandler:
    def __init__(self, on_add: Optional[PodCallback] = None,
                 on_update: Optional[PodUpdateCallback] = None,
                 on_delete: Optional[PodCallback] = None,
                 on_resync: Optional[PodCallback] = None) -> None:
        self.on_add = on_add
        self.on_update = on_update
        self.on_delete = on_delete
        self.on_resync = on_resync


class PodInformer:
    """
    Local cache of Pods kept up to date by a list + watch loop.

    Reads from the cache never block on the API server. Every resync_period
    seconds all cached pods are handed to the on_resync handlers.
    """

    def __init__(self, api_core, namespace: str = "",
                 field_selector: Optional[str] = None,
                 label_selector: Optional[str] = None,
                 resync_period: float = 0,
                 watch_timeout: int = 300,
                 request_timeout: Optional[float] = None,
                 logger: Optional[Logger] = None) -> None:
        self.api_core = api_core
        self.namespace = namespace
        self.field_selector = field_selector
        self.label_selector = label_selector
        self.resync_period = resync_period
        self.watch_timeout = watch_timeout
        self.request_timeout = request_timeout
        self.logger = logger or getLogger("pod-informer")

        self._store: Dict[str, api_client.V1Pod] = {}
        self._lock = threading.Lock()
        self._handlers: List[EventHandler] = []
        self._synced = threading.Event()
        self._watch: Optional[watch.Watch] = None

    def add_event_handler(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def get_by_key(self, key: str) -> Optional[api_client.V1Pod]:
        with self._lock:
            return self._store.get(key)

    def list_keys(self) -> List[str]:
        with self._lock:
            return list(self._store.keys())

    def has_synced(self) -> bool:
        return self._synced.is_set()

    def wait_for_cache_sync(self, stop: threading.Event, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while not stop.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if self._synced.wait(min(remaining, 0.5)):
                return True
        return self._synced.is_set()

    def _selectors(self) -> dict:
        kwargs = {}
        if self.field_selector:
            kwargs["field_selector"] = self.field_selector
        if self.label_selector:
            kwargs["label_selector"] = self.label_selector
        return kwargs

    def _list_func(self, **kwargs):
        if self.namespace:
            return self.api_core.list_namespaced_pod(self.namespace, **kwargs)
        return self.api_core.list_pod_for_all_namespaces(**kwargs)

    def relist(self) -> str:
        """Replace the cache with a fresh list, returns its resourceVersion"""
        pods = self._list_func(_request_timeout=self.request_timeout,
                               **self._selectors())
        new = {pod_key(pod): pod for pod in pods.items}
        with self._lock:
            old = self._store
            self._store = new

        for key, pod in new.items():
            if key in old:
                self._dispatch_update(old[key], pod)
            else:
                self._dispatch_add(pod)
        for key in old.keys() - new.keys():
            self._dispatch_delete(old[key])

        self._synced.set()
        return pods.metadata.resource_version

    def handle_event(self, event_type: str, pod: api_client.V1Pod) -> None:
        key = pod_key(pod)
        if event_type == "DELETED":
            with self._lock:
                old = self._store.pop(key, None)
            self._dispatch_delete(old or pod)
            return

        with self._lock:
            old = self._store.get(key)
            self._store[key] = pod
        if old is None:
            self._dispatch_add(pod)
        else:
            self._dispatch_update(old, pod)

    def resync(self) -> None:
        with self._lock:
            pods = list(self._store.values())
        for pod in pods:
            for h in self._handlers:
                if h.on_resync:
                    h.on_resync(pod)

    def _dispatch_add(self, pod: api_client.V1Pod) -> None:
        for h in self._handlers:
            if h.on_add:
                h.on_add(pod)

    def _dispatch_update(self, old: api_client.V1Pod, new: api_client.V1Pod) -> None:
        for h in self._handlers:
            if h.on_update:
                h.on_update(old, new)

    def _dispatch_delete(self, pod: api_client.V1Pod) -> None:
        for h in self._handlers:
            if h.on_delete:
                h.on_delete(pod)

    def _watch_once(self, stop: threading.Event, resource_version: str) -> Optional[str]:
        """
        Watch until the server closes the stream. Returns the last seen
        resourceVersion, or None if the cache has to be relisted.
        """
        timeout = self.watch_timeout
        if self.resync_period:
            timeout = max(1, min(timeout, int(self.resync_period)))

        self._watch = watch.Watch()
        for event in self._watch.stream(self._list_func,
                                        resource_version=resource_version,
                                        timeout_seconds=timeout,
                                        **self._selectors()):
            if stop.is_set():
                self._watch.stop()
                break

            if event["type"] == "ERROR":
                raw = event.get("raw_object") or {}
                if raw.get("code") == 410:
                    return None
                self.logger.warning(f"Watch error: {raw}")
                continue

            pod = event["object"]
            resource_version = pod.metadata.resource_version
            self.handle_event(event["type"], pod)

        return resource_version

    def run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                resource_version = self.relist()
                last_resync = time.monotonic()

                while resource_version and not stop.is_set():
                    resource_version = self._watch_once(stop, resource_version)
                    if self.resync_period and time.monotonic() - last_resync >= self.resync_period:
                        self.resync()
                        last_resync = time.monotonic()
            except ApiException as e:
                if e.status == 410:
                    self.logger.info("Watch expired, relisting pods")
                    continue
                self.logger.error(f"Error watching pods: {e}")
                stop.wait(1)
            except Exception as e:
                # connection drops etc, the watch is just started over
                self.logger.warning(f"Pod watch interrupted: {e}")
                stop.wait(1)

    def stop(self) -> None:
        if self._watch:
            self._watch.stop()
