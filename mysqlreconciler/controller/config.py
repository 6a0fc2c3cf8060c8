# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from importlib import metadata
from typing import Optional
import os

from .errors import ConfigurationError

debug = 0

# Constants
OPERATOR_VERSION = "0.1.0"

# Deadline in seconds for every call to the Kubernetes API
DEFAULT_REQUEST_TIMEOUT = 30.0
request_timeout = DEFAULT_REQUEST_TIMEOUT

# Connect timeout for the replication probe
DEFAULT_PROBE_CONNECT_TIMEOUT = 10

DEFAULT_MAX_NUM_REQUEUES = 5
DEFAULT_NUM_THREADS = 2
DEFAULT_RESYNC_PERIOD = 600.0
DEFAULT_CACHE_SYNC_TIMEOUT = 60.0

# Environment of the labeler container, populated from the database auth secret
MYSQL_USER_ENV_NAME = "MYSQL_ROOT_USERNAME"
MYSQL_PASSWORD_ENV_NAME = "MYSQL_ROOT_PASSWORD"


class LabelerConfig:
    watch_namespace: str = ""
    # When set, only this pod is watched (the labeler runs next to mysqld)
    pod_name: Optional[str] = None

    max_num_requeues: int = DEFAULT_MAX_NUM_REQUEUES
    num_threads: int = DEFAULT_NUM_THREADS
    resync_period: float = DEFAULT_RESYNC_PERIOD
    cache_sync_timeout: float = DEFAULT_CACHE_SYNC_TIMEOUT

    def validate(self) -> None:
        if self.num_threads < 1:
            raise ConfigurationError(
                f"Number of worker threads must be at least 1, got {self.num_threads}")
        if self.max_num_requeues < 0:
            raise ConfigurationError(
                f"Maximum number of requeues can't be negative, got {self.max_num_requeues}")
        if self.resync_period < 0:
            raise ConfigurationError(
                f"Resync period can't be negative, got {self.resync_period}")

    @property
    def field_selector(self) -> Optional[str]:
        if self.pod_name:
            return f"metadata.name={self.pod_name}"
        return None


def log_config_banner(logger) -> None:
    logger.info(f"OPERATOR_VERSION   ={OPERATOR_VERSION}")
    logger.info(f"REQUEST_TIMEOUT    ={request_timeout}")
    logger.info(f"DEBUG              ={debug}")
    for pkg in ("kopf", "kubernetes", "mysql-connector-python"):
        try:
            version = metadata.version(pkg)
        except metadata.PackageNotFoundError:
            version = "not installed"
        logger.info(f"{pkg:22} = {version:10}")


def config_from_env() -> None:
    global debug
    global request_timeout

    level = os.getenv("MYSQL_RECONCILER_DEBUG")
    if level:
        debug = int(level)

    timeout = os.getenv("MYSQL_RECONCILER_REQUEST_TIMEOUT")
    if timeout:
        try:
            request_timeout = float(timeout)
        except ValueError:
            raise ConfigurationError(
                f"MYSQL_RECONCILER_REQUEST_TIMEOUT must be a number, got '{timeout}'")
