# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger

from kopf._cogs.structs.bodies import Body
import kopf

from .. import config, consts
from ..errors import NotFoundError
from ..k8sobject import EventRecorder
from ..kubeutils import KubeApis
from .certificates import CertificateLifecycleManager, CertPurpose
from .mysql_api import MySQLInstance

# How often certificates of healthy instances are re-checked, in seconds
RECHECK_INTERVAL = 300


def make_manager(apis: KubeApis, logger: Logger) -> CertificateLifecycleManager:
    recorder = EventRecorder(apis.core, request_timeout=config.request_timeout)
    return CertificateLifecycleManager(apis.core, apis.customobj, recorder,
                                       logger=logger,
                                       request_timeout=config.request_timeout)


def reconcile_tls(mysql: MySQLInstance, apis: KubeApis, logger: Logger) -> bool:
    """
    Ensure the certificates of the instance and wait for them to be issued.
    Returns False if there's nothing to do for this instance.
    """
    if mysql.deleting or not mysql.tls_enabled:
        return False

    mgr = make_manager(apis, logger)
    mgr.manage_tls(mysql)
    # raises NotFoundError (a kopf.TemporaryError) until cert-manager is done
    mgr.check_certificates_ready(mysql)
    return True


def log_tls_info(mysql: MySQLInstance, apis: KubeApis, logger: Logger) -> None:
    mgr = make_manager(apis, logger)
    try:
        info = mgr.get_certificate_info(mysql, CertPurpose.Server)
    except (NotFoundError, ValueError) as e:
        logger.warning(f"Could not read server certificate of {mysql}: {e}")
        return
    logger.info(f"\tServer.TLS.issuer :\t{info['issuer']}")
    logger.info(f"\tServer.TLS.subject:\t{info['subject']}")
    logger.info(f"\tServer.TLS.expires:\t{info['notAfter']}")


@kopf.on.create(consts.GROUP, consts.VERSION, consts.MYSQL_PLURAL)  # type: ignore
@kopf.on.resume(consts.GROUP, consts.VERSION, consts.MYSQL_PLURAL)  # type: ignore
@kopf.on.update(consts.GROUP, consts.VERSION, consts.MYSQL_PLURAL,
                field="spec.tls")  # type: ignore
def on_mysql_tls(body: Body, memo: kopf.Memo, logger: Logger, **kwargs) -> None:
    mysql = MySQLInstance(body)

    if reconcile_tls(mysql, memo.apis, logger):
        logger.info(f"TLS certificates of {mysql} are ready")
        log_tls_info(mysql, memo.apis, logger)


@kopf.timer(consts.GROUP, consts.VERSION, consts.MYSQL_PLURAL,
            interval=RECHECK_INTERVAL, idle=RECHECK_INTERVAL)  # type: ignore
def on_mysql_tls_recheck(body: Body, memo: kopf.Memo, logger: Logger, **kwargs) -> None:
    # picks up service ingress changes and secrets issued after the last pass
    reconcile_tls(MySQLInstance(body), memo.apis, logger)
