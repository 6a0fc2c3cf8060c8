# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger, getLogger
from typing import Optional
import threading

from kubernetes import client as api_client

from .. import consts
from ..config import LabelerConfig
from ..kubeutils import KubeApis
from ..primary_probe import ReplicationPrimaryProbe
from .informer import EventHandler, PodInformer, pod_key
from .workqueue import Worker


def is_managed(pod: api_client.V1Pod) -> bool:
    labels = pod.metadata.labels or {}
    return consts.LABEL_DATABASE_KIND in labels and consts.LABEL_DATABASE_NAME in labels


def has_primary_role(pod: api_client.V1Pod) -> bool:
    labels = pod.metadata.labels or {}
    return labels.get(consts.LABEL_ROLE) == consts.ROLE_PRIMARY


def metadata_snapshot(pod: api_client.V1Pod) -> dict:
    # resourceVersion and managedFields change on every write, including
    # status only updates
    meta = pod.metadata.to_dict()
    meta.pop("resource_version", None)
    meta.pop("managed_fields", None)
    return meta


class RoleLabelController:
    """
    Keeps the primary role label on the pod that MySQL group replication
    reports as PRIMARY, and removes it from all other managed pods.

    Each pod is only ever asked about itself, so a controller only writes to
    the pod it is processing. Two pods may briefly both carry the label
    during a failover, the next pass over the old primary removes it.
    """

    def __init__(self, api_core, informer: PodInformer,
                 probe: ReplicationPrimaryProbe,
                 max_num_requeues: int, num_threads: int,
                 cache_sync_timeout: float,
                 request_timeout: Optional[float] = None,
                 logger: Optional[Logger] = None) -> None:
        self.api_core = api_core
        self.informer = informer
        self.probe = probe
        self.cache_sync_timeout = cache_sync_timeout
        self.request_timeout = request_timeout
        self.logger = logger or getLogger("role-labeler")

        self.worker = Worker("Pod", max_num_requeues, num_threads,
                             self.reconcile, logger=self.logger)

        self.informer.add_event_handler(EventHandler(
            on_add=self.on_add,
            on_update=self.on_update,
            on_delete=self.on_delete,
            on_resync=self.on_add))

    @classmethod
    def from_config(cls, cfg: LabelerConfig, apis: KubeApis,
                    probe: ReplicationPrimaryProbe,
                    request_timeout: Optional[float] = None,
                    logger: Optional[Logger] = None) -> 'RoleLabelController':
        cfg.validate()
        informer = PodInformer(apis.core, namespace=cfg.watch_namespace,
                               field_selector=cfg.field_selector,
                               resync_period=cfg.resync_period,
                               request_timeout=request_timeout,
                               logger=logger)
        return cls(apis.core, informer, probe,
                   max_num_requeues=cfg.max_num_requeues,
                   num_threads=cfg.num_threads,
                   cache_sync_timeout=cfg.cache_sync_timeout,
                   request_timeout=request_timeout,
                   logger=logger)

    @property
    def queue(self):
        return self.worker.queue

    def on_add(self, pod: api_client.V1Pod) -> None:
        self.queue.add(pod_key(pod))

    def on_update(self, old: api_client.V1Pod, new: api_client.V1Pod) -> None:
        if metadata_snapshot(old) != metadata_snapshot(new):
            self.queue.add(pod_key(new))

    def on_delete(self, pod: api_client.V1Pod) -> None:
        # a deleted pod has no label left to fix
        pass

    def reconcile(self, key: str) -> None:
        pod = self.informer.get_by_key(key)
        if pod is None:
            self.logger.debug(f"Pod {key} does not exist anymore")
            return

        if not is_managed(pod):
            return

        if self.probe.is_primary(pod):
            self.ensure_role_as_primary(pod)
        else:
            self.remove_role(pod)

    def patch_labels(self, pod: api_client.V1Pod, labels: dict) -> None:
        self.api_core.patch_namespaced_pod(
            pod.metadata.name, pod.metadata.namespace,
            {"metadata": {"labels": labels}},
            _request_timeout=self.request_timeout)

    def ensure_role_as_primary(self, pod: api_client.V1Pod) -> None:
        if has_primary_role(pod):
            return
        self.patch_labels(pod, {consts.LABEL_ROLE: consts.ROLE_PRIMARY})
        self.logger.info(f"Pod {pod.metadata.namespace}/{pod.metadata.name} labeled as {consts.ROLE_PRIMARY}")

    def remove_role(self, pod: api_client.V1Pod) -> None:
        labels = pod.metadata.labels or {}
        if consts.LABEL_ROLE not in labels:
            return
        # null removes the key in a merge patch
        self.patch_labels(pod, {consts.LABEL_ROLE: None})
        self.logger.info(f"Removed {consts.LABEL_ROLE} label from pod {pod.metadata.namespace}/{pod.metadata.name}")

    def run(self, stop: threading.Event) -> None:
        """Blocks until stop is set"""
        informer_thread = threading.Thread(target=self.informer.run, args=(stop,),
                                           daemon=True, name="pod-informer")
        informer_thread.start()

        if not self.informer.wait_for_cache_sync(stop, self.cache_sync_timeout):
            if stop.is_set():
                return
            raise Exception(
                f"Timed out after {self.cache_sync_timeout}s waiting for the pod cache to sync")

        self.logger.info(f"Pod cache synced, {len(self.informer.list_keys())} pods")
        try:
            self.worker.run(stop)
        finally:
            self.informer.stop()
