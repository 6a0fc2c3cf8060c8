# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

"""Management of the cert-manager Certificates of a MySQL instance

Every TLS enabled instance gets three Certificates, one for the server and two
for clients (the e2e client and the metrics exporter). cert-manager issues
them asynchronously into Secrets of the same name. Once those Secrets show up
we make them owned by both the Certificate and the MySQL object, so they get
garbage collected together.

Nothing here retries. Errors go back to the caller (the kopf handler), which
runs the whole pass again later.
"""

from enum import Enum
from logging import Logger, getLogger
from typing import List, Optional, Tuple, cast
import base64

from cryptography import x509
from kubernetes import client as api_client
import yaml

from .. import consts, utils
from ..errors import ConfigurationError, NotFoundError
from ..k8sobject import EventRecorder
from ..kubeutils import ApiException, catch_404
from .mysql_api import MySQLInstance


class CertPurpose(Enum):
    Server = consts.SERVER_CERT_SUFFIX
    Client = consts.CLIENT_CERT_SUFFIX
    ExporterClient = consts.EXPORTER_CLIENT_CERT_SUFFIX

    @property
    def usages(self) -> List[str]:
        if self is CertPurpose.Server:
            return ["digital signature", "key encipherment", "server auth"]
        return ["digital signature", "key encipherment", "client auth"]

    @property
    def description(self) -> str:
        return {
            CertPurpose.Server: "server certificates",
            CertPurpose.Client: "client-certificates",
            CertPurpose.ExporterClient: "exporter client-certificates"
        }[self]


class Verb(Enum):
    Created = "Created"
    Patched = "Patched"
    Unchanged = "Unchanged"


SUPPORTED_ISSUER_KINDS = (consts.ISSUER_KIND, consts.CLUSTER_ISSUER_KIND)

# Fields of Certificate.spec owned by us. Anything else is left alone.
MANAGED_SPEC_FIELDS = ("commonName", "secretName", "isCA", "issuerRef",
                       "subject", "duration", "renewBefore", "dnsNames",
                       "ipAddresses", "uris", "usages")


def _owner_ref_to_dict(ref: api_client.V1OwnerReference) -> dict:
    d = {
        "apiVersion": ref.api_version,
        "kind": ref.kind,
        "name": ref.name,
        "uid": ref.uid,
        "controller": ref.controller,
        "blockOwnerDeletion": ref.block_owner_deletion
    }
    return {k: v for k, v in d.items() if v is not None}


def prepare_certificate(mysql: MySQLInstance, purpose: CertPurpose,
                        dns_names: List[str], ip_addresses: List[str]) -> dict:
    """
    Build the desired Certificate for the given purpose. dns_names and
    ip_addresses are the defaults, operator overrides are added here.
    """
    name = mysql.certificate_name(purpose.value)
    issuer = mysql.tls.issuerRef
    overrides = mysql.tls.certificate

    tmpl = f"""
apiVersion: {consts.CERTMANAGER_API_VERSION}
kind: {consts.CERTIFICATE_KIND}
metadata:
  name: {name}
  namespace: {mysql.namespace}
spec:
  commonName: {mysql.service_url}
  secretName: {name}
  isCA: false
  issuerRef:
    name: {issuer.name}
    kind: {issuer.kind}
    group: {issuer.apiGroup}
"""
    cert = yaml.safe_load(tmpl)
    cert["metadata"]["labels"] = mysql.labels
    cert["metadata"]["ownerReferences"] = [mysql.controller_ref()]

    spec = cert["spec"]
    spec["dnsNames"] = utils.unique(dns_names + overrides.dnsNames)
    spec["ipAddresses"] = utils.unique(ip_addresses + overrides.ipAddresses)
    if overrides.uriSANs:
        spec["uris"] = utils.unique(overrides.uriSANs)

    organizations = list(overrides.organization)
    if purpose is CertPurpose.Server:
        organizations.append(consts.SERVER_CERT_ORGANIZATION)
    if organizations:
        spec["subject"] = {"organizations": utils.unique(organizations)}

    if overrides.duration:
        spec["duration"] = overrides.duration
    if overrides.renewBefore:
        spec["renewBefore"] = overrides.renewBefore

    spec["usages"] = purpose.usages

    return cert


class CertificateLifecycleManager:
    def __init__(self, api_core, api_customobj, recorder: EventRecorder,
                 logger: Optional[Logger] = None,
                 request_timeout: Optional[float] = None) -> None:
        self.api_core = api_core
        self.api_customobj = api_customobj
        self.recorder = recorder
        self.logger = logger or getLogger("certificates")
        self.request_timeout = request_timeout

    def manage_tls(self, mysql: MySQLInstance) -> None:
        self.validate_issuer(mysql)

        for purpose in CertPurpose:
            self.manage_certificate(mysql, purpose)

    def validate_issuer(self, mysql: MySQLInstance) -> None:
        issuer = mysql.tls.issuerRef
        if issuer.kind not in SUPPORTED_ISSUER_KINDS:
            raise ConfigurationError(
                f"{mysql}: spec.tls.issuerRef.kind is '{issuer.kind}' but must be either "
                f"{consts.ISSUER_KIND} or {consts.CLUSTER_ISSUER_KIND}")

        try:
            if issuer.kind == consts.ISSUER_KIND:
                self.api_customobj.get_namespaced_custom_object(
                    consts.CERTMANAGER_GROUP, consts.CERTMANAGER_VERSION,
                    mysql.namespace, consts.ISSUER_PLURAL, issuer.name,
                    _request_timeout=self.request_timeout)
            else:
                self.api_customobj.get_cluster_custom_object(
                    consts.CERTMANAGER_GROUP, consts.CERTMANAGER_VERSION,
                    consts.CLUSTER_ISSUER_PLURAL, issuer.name,
                    _request_timeout=self.request_timeout)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(
                    f"{mysql}: {issuer.kind} '{issuer.name}' not found")
            raise

    def manage_certificate(self, mysql: MySQLInstance, purpose: CertPurpose) -> Verb:
        verb = self.ensure_certificate(mysql, purpose)

        if verb is not Verb.Unchanged:
            self.recorder.event(
                mysql,
                type=consts.EVENT_TYPE_NORMAL,
                reason=consts.EVENT_REASON_SUCCESSFUL,
                message=f"Successfully {verb.value.lower()} MySQL {purpose.description}")
            self.logger.info(f"{mysql}: {purpose.value}-certificates {verb.value}")

        # The Secret is written by cert-manager whenever it gets to it
        if not self.attach_secret_owners(mysql, purpose):
            self.logger.debug(
                f"{mysql}: secret {mysql.certificate_name(purpose.value)} not issued yet")

        return verb

    def get_service_hosts(self, mysql: MySQLInstance) -> Tuple[List[str], List[str]]:
        service = cast(api_client.V1Service, self.api_core.read_namespaced_service(
            mysql.name, mysql.namespace, _request_timeout=self.request_timeout))

        dns_names = [mysql.service_url, "localhost"]
        ip_addresses = ["127.0.0.1"]

        status = service.status
        ingress = []
        if status and status.load_balancer and status.load_balancer.ingress:
            ingress = status.load_balancer.ingress
        for item in ingress:
            if item.hostname:
                dns_names.append(item.hostname)
            elif item.ip:
                ip_addresses.append(item.ip)

        return dns_names, ip_addresses

    def desired_certificate(self, mysql: MySQLInstance, purpose: CertPurpose) -> dict:
        if purpose is CertPurpose.Server:
            dns_names, ip_addresses = self.get_service_hosts(mysql)
        else:
            dns_names = [mysql.service_url, "localhost"]
            ip_addresses = ["127.0.0.1"]

        return prepare_certificate(mysql, purpose, dns_names, ip_addresses)

    def get_certificate(self, namespace: str, name: str) -> Optional[dict]:
        return catch_404(lambda: self.api_customobj.get_namespaced_custom_object(
            consts.CERTMANAGER_GROUP, consts.CERTMANAGER_VERSION, namespace,
            consts.CERTIFICATE_PLURAL, name,
            _request_timeout=self.request_timeout))

    def ensure_certificate(self, mysql: MySQLInstance, purpose: CertPurpose) -> Verb:
        desired = self.desired_certificate(mysql, purpose)
        name = desired["metadata"]["name"]

        existing = self.get_certificate(mysql.namespace, name)
        if existing is None:
            self.api_customobj.create_namespaced_custom_object(
                consts.CERTMANAGER_GROUP, consts.CERTMANAGER_VERSION,
                mysql.namespace, consts.CERTIFICATE_PLURAL, desired,
                _request_timeout=self.request_timeout)
            return Verb.Created

        patch = self.certificate_patch(existing, desired)
        if patch is None:
            return Verb.Unchanged

        self.api_customobj.patch_namespaced_custom_object(
            consts.CERTMANAGER_GROUP, consts.CERTMANAGER_VERSION,
            mysql.namespace, consts.CERTIFICATE_PLURAL, name, patch,
            _request_timeout=self.request_timeout)
        return Verb.Patched

    def certificate_patch(self, existing: dict, desired: dict) -> Optional[dict]:
        """
        Merge patch turning existing into desired, None if there's nothing
        to change. The patch carries the resourceVersion we looked at, so it
        fails if someone else wrote in between.
        """
        metadata = existing.get("metadata") or {}
        patch_metadata = {}

        labels = metadata.get("labels") or {}
        desired_labels = desired["metadata"]["labels"]
        if any(labels.get(k) != v for k, v in desired_labels.items()):
            patch_metadata["labels"] = desired_labels

        owners = metadata.get("ownerReferences") or []
        desired_owners = owners
        for ref in desired["metadata"]["ownerReferences"]:
            desired_owners = utils.ensure_owner_reference(desired_owners, ref)
        if desired_owners != owners:
            patch_metadata["ownerReferences"] = desired_owners

        spec = existing.get("spec") or {}
        desired_spec = desired["spec"]
        spec_changed = any(spec.get(f) != desired_spec.get(f) for f in MANAGED_SPEC_FIELDS)

        if not patch_metadata and not spec_changed:
            return None

        patch_metadata["resourceVersion"] = metadata.get("resourceVersion")
        patch = {"metadata": patch_metadata}
        if spec_changed:
            # None removes the field from the object
            patch["spec"] = {f: desired_spec.get(f) for f in MANAGED_SPEC_FIELDS}
        return patch

    def attach_secret_owners(self, mysql: MySQLInstance, purpose: CertPurpose) -> bool:
        """
        Make the issued Secret owned by its Certificate and by the MySQL
        object. Returns False if the Secret doesn't exist yet.
        """
        name = mysql.certificate_name(purpose.value)
        secret = catch_404(lambda: self.api_core.read_namespaced_secret(
            name, mysql.namespace, _request_timeout=self.request_timeout))
        if secret is None:
            return False
        secret = cast(api_client.V1Secret, secret)

        cert = self.api_customobj.get_namespaced_custom_object(
            consts.CERTMANAGER_GROUP, consts.CERTMANAGER_VERSION, mysql.namespace,
            consts.CERTIFICATE_PLURAL, name,
            _request_timeout=self.request_timeout)
        cert_ref = utils.owner_reference(consts.CERTMANAGER_API_VERSION,
                                         consts.CERTIFICATE_KIND, name,
                                         cert["metadata"]["uid"])

        owners = [_owner_ref_to_dict(ref)
                  for ref in (secret.metadata.owner_references or [])]
        new_owners = utils.ensure_owner_reference(owners, cert_ref)
        new_owners = utils.ensure_owner_reference(new_owners, mysql.controller_ref())
        if new_owners == owners:
            return True

        patch = [
            {"op": "test", "path": "/metadata/resourceVersion",
             "value": secret.metadata.resource_version},
            {"op": "add", "path": "/metadata/ownerReferences",
             "value": new_owners}
        ]
        self.api_core.patch_namespaced_secret(
            name, mysql.namespace, patch, _request_timeout=self.request_timeout)
        self.logger.info(f"{mysql}: set owners of secret {name}")
        return True

    def check_certificates_ready(self, mysql: MySQLInstance) -> None:
        for suffix in (consts.CLIENT_CERT_SUFFIX, consts.SERVER_CERT_SUFFIX,
                       consts.EXPORTER_CLIENT_CERT_SUFFIX):
            name = mysql.certificate_name(suffix)
            if catch_404(lambda: self.api_core.read_namespaced_secret(
                    name, mysql.namespace,
                    _request_timeout=self.request_timeout)) is None:
                raise NotFoundError(
                    f"{mysql}: certificate secret {name} not found")

    def get_certificate_info(self, mysql: MySQLInstance, purpose: CertPurpose) -> dict:
        name = mysql.certificate_name(purpose.value)
        secret = cast(api_client.V1Secret, self.api_core.read_namespaced_secret(
            name, mysql.namespace, _request_timeout=self.request_timeout))
        data = secret.data or {}
        if "tls.crt" not in data:
            raise NotFoundError(f"{mysql}: secret {name} has no tls.crt")

        tls_cert = x509.load_pem_x509_certificate(base64.b64decode(data["tls.crt"]))
        # rfc4514 lists the RDNs last to first
        issuer_rdns = "/" + "/".join(tls_cert.issuer.rfc4514_string().split(",")[::-1])
        subject_rdns = "/" + "/".join(tls_cert.subject.rfc4514_string().split(",")[::-1])
        return {
            "issuer": issuer_rdns,
            "subject": subject_rdns,
            "notAfter": tls_cert.not_valid_after_utc.isoformat()
        }
