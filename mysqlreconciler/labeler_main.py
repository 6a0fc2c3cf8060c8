# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from .controller import config as myconfig
from .controller import kubeutils, utils
from .controller.config import LabelerConfig
from .controller.errors import ConfigurationError
from .controller.labeler.label_controller import RoleLabelController
from .controller.primary_probe import EnvCredentialSource, ReplicationPrimaryProbe
import argparse
import logging
import os
import signal
import threading


def main(argv):
    # const - when there is an argument without value
    # default - when there is no argument at all
    # nargs = "?" - zero or one arguments
    parser = argparse.ArgumentParser(description = "MySQL Group Replication primary role labeler")
    parser.add_argument('--logging-level', type = int, nargs="?", default = logging.INFO, help = "Logging Level")
    parser.add_argument('--namespace', type = str, default = os.getenv("POD_NAMESPACE", ""), help = "Namespace to watch, all namespaces if empty")
    parser.add_argument('--pod-name', type = str, default = os.getenv("HOSTNAME"), help = "Only watch this pod")
    parser.add_argument('--max-requeues', type = int, default = myconfig.DEFAULT_MAX_NUM_REQUEUES, help = "Retries of a failed pod before it is dropped")
    parser.add_argument('--threads', type = int, default = myconfig.DEFAULT_NUM_THREADS, help = "Number of worker threads")
    parser.add_argument('--resync-period', type = float, default = myconfig.DEFAULT_RESYNC_PERIOD, help = "Seconds between re-checks of all watched pods")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.logging_level,
                        format='%(asctime)s - [%(levelname)s] [%(name)s] %(message)s',
                        datefmt="%Y-%m-%dT%H:%M:%S")
    logger = logging.getLogger("labeler")
    utils.log_banner(__file__, logger)

    myconfig.config_from_env()

    cfg = LabelerConfig()
    cfg.watch_namespace = args.namespace
    cfg.pod_name = args.pod_name or None
    cfg.max_num_requeues = args.max_requeues
    cfg.num_threads = args.threads
    cfg.resync_period = args.resync_period

    credentials = EnvCredentialSource()
    try:
        cfg.validate()
        # fail now rather than on every reconcile
        credentials.get()
    except ConfigurationError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 1

    apis = kubeutils.connect()
    probe = ReplicationPrimaryProbe(credentials, logger=logging.getLogger("primary-probe"))
    controller = RoleLabelController.from_config(cfg, apis, probe,
                                                 request_timeout=myconfig.request_timeout,
                                                 logger=logger)

    stop = threading.Event()

    def on_signal(signum, frame):
        logger.info(f"Got signal {signum}, shutting down")
        stop.set()

    signal.signal(signal.SIGTERM, on_signal)
    signal.signal(signal.SIGINT, on_signal)

    if cfg.pod_name:
        logger.info(f"Watching pod {cfg.pod_name} in '{cfg.watch_namespace}'")
    else:
        logger.info(f"Watching pods in '{cfg.watch_namespace or 'all namespaces'}'")

    try:
        controller.run(stop)
    except Exception as e:
        logger.critical(f"Labeler failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    main([])
