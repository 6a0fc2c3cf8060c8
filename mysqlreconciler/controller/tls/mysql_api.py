# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import List, Optional, cast

from kopf._cogs.structs.bodies import Body

from ..k8sobject import K8sInterfaceObject
from .. import consts, utils
from ..api_utils import dget_dict, dget_int, dget_list, dget_str


class IssuerRef:
    name: str = ""
    kind: str = ""
    apiGroup: str = consts.CERTMANAGER_GROUP

    def parse(self, spec: dict, prefix: str) -> None:
        self.name = dget_str(spec, "name", prefix)
        # kind is validated against the supported issuers before use
        self.kind = dget_str(spec, "kind", prefix, default_value="")
        self.apiGroup = dget_str(spec, "apiGroup", prefix,
                                 default_value=consts.CERTMANAGER_GROUP)


class CertificateOverrides:
    """
    Operator supplied additions to the generated certificates.
    """

    def __init__(self) -> None:
        # initialize now or all instances will share the same list
        self.dnsNames: List[str] = []
        self.ipAddresses: List[str] = []
        self.uriSANs: List[str] = []
        self.organization: List[str] = []
        self.duration: Optional[str] = None
        self.renewBefore: Optional[str] = None

    def parse(self, spec: dict, prefix: str) -> None:
        self.dnsNames = dget_list(spec, "dnsNames", prefix, [], content_type=str)
        self.ipAddresses = dget_list(spec, "ipAddresses", prefix, [], content_type=str)
        self.uriSANs = dget_list(spec, "uriSANs", prefix, [], content_type=str)
        self.organization = dget_list(spec, "organization", prefix, [], content_type=str)
        if "duration" in spec:
            self.duration = dget_str(spec, "duration", prefix)
        if "renewBefore" in spec:
            self.renewBefore = dget_str(spec, "renewBefore", prefix)


class TLSSpec:
    def __init__(self) -> None:
        self.issuerRef = IssuerRef()
        self.certificate = CertificateOverrides()

    def parse(self, spec: dict, prefix: str) -> None:
        self.issuerRef.parse(dget_dict(spec, "issuerRef", prefix), prefix+".issuerRef")
        if "certificate" in spec:
            self.certificate.parse(dget_dict(spec, "certificate", prefix), prefix+".certificate")


class MySQLSpec:
    replicas: int = 1
    tls: Optional[TLSSpec] = None

    def __init__(self, namespace: str, name: str, spec: dict) -> None:
        self.namespace = namespace
        self.name = name
        self.load(spec)

    def load(self, spec: dict) -> None:
        if "replicas" in spec:
            self.replicas = dget_int(spec, "replicas", "spec")

        if spec.get("tls"):
            self.tls = TLSSpec()
            self.tls.parse(dget_dict(spec, "tls", "spec"), "spec.tls")


class MySQLInstance(K8sInterfaceObject):
    def __init__(self, mysql: Body) -> None:
        super().__init__()

        self.obj: Body = mysql
        self._parsed_spec: Optional[MySQLSpec] = None

    def __str__(self):
        return f"{self.namespace}/{self.name}"

    def __repr__(self):
        return f"<MySQL {self.name}>"

    @property
    def metadata(self) -> dict:
        return self.obj["metadata"]

    @property
    def labels(self) -> dict:
        return dict(self.metadata.get("labels") or {})

    @property
    def spec(self) -> dict:
        return self.obj.get("spec") or {}

    @property
    def name(self) -> str:
        return self.metadata["name"]

    @property
    def namespace(self) -> str:
        return self.metadata["namespace"]

    @property
    def uid(self) -> str:
        return self.metadata["uid"]

    @property
    def deleting(self) -> bool:
        return "deletionTimestamp" in self.metadata and self.metadata["deletionTimestamp"] is not None

    def self_ref(self, field_path: Optional[str] = None) -> dict:
        ref = {
            "apiVersion": consts.API_VERSION,
            "kind": consts.MYSQL_KIND,
            "name": self.name,
            "namespace": self.namespace,
            "resourceVersion": self.metadata.get("resourceVersion"),
            "uid": self.uid
        }
        if field_path:
            ref["fieldPath"] = field_path
        return ref

    def controller_ref(self) -> dict:
        return utils.owner_reference(consts.API_VERSION, consts.MYSQL_KIND,
                                     self.name, self.uid, controller=True)

    @property
    def parsed_spec(self) -> MySQLSpec:
        if not self._parsed_spec:
            self.parse_spec()
            assert self._parsed_spec

        return self._parsed_spec

    def parse_spec(self) -> None:
        self._parsed_spec = MySQLSpec(self.namespace, self.name, self.spec)

    @property
    def tls_enabled(self) -> bool:
        return self.parsed_spec.tls is not None

    @property
    def tls(self) -> TLSSpec:
        return cast(TLSSpec, self.parsed_spec.tls)

    @property
    def service_url(self) -> str:
        # The primary service is named after the instance
        return f"{self.name}.{self.namespace}.svc"

    def certificate_name(self, suffix: str) -> str:
        return f"{self.name}-{suffix}"
