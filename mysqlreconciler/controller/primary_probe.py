# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from abc import ABC, abstractmethod
from logging import Logger, getLogger
from typing import Callable, Optional, Tuple
import os

from kubernetes import client as api_client
import mysql.connector

from . import config, consts
from .errors import ConfigurationError, NotFoundError, TransientError


PRIMARY_MEMBER_QUERY = """SELECT MEMBER_HOST FROM performance_schema.replication_group_members
    INNER JOIN performance_schema.global_status ON (MEMBER_ID = VARIABLE_VALUE)
    WHERE VARIABLE_NAME='group_replication_primary_member';"""


class CredentialSource(ABC):
    @abstractmethod
    def get(self) -> Tuple[str, str]:
        """Return (user, password). Raises ConfigurationError if unusable."""
        ...


class EnvCredentialSource(CredentialSource):
    def __init__(self, user_env: str = config.MYSQL_USER_ENV_NAME,
                 password_env: str = config.MYSQL_PASSWORD_ENV_NAME) -> None:
        self.user_env = user_env
        self.password_env = password_env

    def get(self) -> Tuple[str, str]:
        user = os.getenv(self.user_env)
        if not user:
            raise ConfigurationError(f"missing '{self.user_env}' env in MySQL Pod")
        return user, os.getenv(self.password_env, "")


class MySQLDbSession:
    def __init__(self, user, password, host, port, **kwargs):
        self._session = mysql.connector.connect(user=user, password=password,
                                                host=host, port=port,
                                                **kwargs)

    def close(self):
        if self._session:
            self._session.close()
            self._session = None

    def query_sql(self, query, params=None) -> list:
        cursor = self._session.cursor()
        try:
            cursor.execute(query, params)
            return cursor.fetchall()
        finally:
            cursor.close()

    def __enter__(self) -> 'MySQLDbSession':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


def pod_endpoint(pod: api_client.V1Pod) -> str:
    if pod.status and pod.status.pod_ip:
        return pod.status.pod_ip
    if pod.spec and pod.spec.subdomain:
        return f"{pod.metadata.name}.{pod.spec.subdomain}.{pod.metadata.namespace}.svc"
    raise TransientError(f"Pod {pod.metadata.namespace}/{pod.metadata.name} has no address yet")


def short_host(host: str) -> str:
    return host.split(".")[0]


class ReplicationPrimaryProbe:
    """
    Asks a MySQL server which group member is the PRIMARY.

    Makes exactly one attempt per call, retrying is up to the caller.
    """

    def __init__(self, credentials: CredentialSource,
                 port: int = consts.MYSQL_PORT,
                 connect_timeout: int = config.DEFAULT_PROBE_CONNECT_TIMEOUT,
                 session_factory: Optional[Callable[..., MySQLDbSession]] = None,
                 logger: Optional[Logger] = None) -> None:
        self.credentials = credentials
        self.port = port
        self.connect_timeout = connect_timeout
        self.session_factory = session_factory if session_factory is not None else MySQLDbSession
        self.logger = logger or getLogger("primary-probe")

    def primary_member_host(self, pod: api_client.V1Pod) -> str:
        user, password = self.credentials.get()
        host = pod_endpoint(pod)

        try:
            session = self.session_factory(user=user, password=password,
                                           host=host, port=self.port,
                                           connection_timeout=self.connect_timeout)
        except mysql.connector.Error as e:
            raise TransientError(f"Error connecting to {host}:{self.port}: {e}")

        with session:
            try:
                rows = session.query_sql(PRIMARY_MEMBER_QUERY)
            except mysql.connector.Error as e:
                raise TransientError(f"Error querying primary member at {host}:{self.port}: {e}")

        if not rows or not rows[0][0]:
            raise NotFoundError(f"{host}:{self.port} reported no primary group member")

        member_host = rows[0][0]
        if isinstance(member_host, (bytes, bytearray)):
            member_host = member_host.decode("utf8")
        self.logger.debug(f"{pod.metadata.name}: primary member is {member_host}")
        return member_host

    def primary_host(self, pod: api_client.V1Pod) -> str:
        return short_host(self.primary_member_host(pod))

    def is_primary(self, pod: api_client.V1Pod) -> bool:
        return self.primary_host(pod) == pod.metadata.name
