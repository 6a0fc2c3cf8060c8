# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

GROUP = "kubedb.com"
VERSION = "v1alpha1"
API_VERSION = GROUP+"/"+VERSION

MYSQL_KIND = "MySQL"
MYSQL_PLURAL = "mysqls"
MYSQL_KEY = "mysql."+GROUP

# Labels put on every pod of a database by the provisioning controller
LABEL_DATABASE_KIND = GROUP+"/kind"
LABEL_DATABASE_NAME = GROUP+"/name"

LABEL_ROLE = MYSQL_KEY+"/role"
ROLE_PRIMARY = "primary"

CERTMANAGER_GROUP = "cert-manager.io"
CERTMANAGER_VERSION = "v1"
CERTMANAGER_API_VERSION = CERTMANAGER_GROUP+"/"+CERTMANAGER_VERSION

CERTIFICATE_KIND = "Certificate"
CERTIFICATE_PLURAL = "certificates"
ISSUER_KIND = "Issuer"
ISSUER_PLURAL = "issuers"
CLUSTER_ISSUER_KIND = "ClusterIssuer"
CLUSTER_ISSUER_PLURAL = "clusterissuers"

SERVER_CERT_SUFFIX = "server"
CLIENT_CERT_SUFFIX = "client"
EXPORTER_CLIENT_CERT_SUFFIX = "exporter-client"

SERVER_CERT_ORGANIZATION = "kubedb:server"

EVENT_TYPE_NORMAL = "Normal"
EVENT_REASON_SUCCESSFUL = "Successful"

MYSQL_PORT = 3306
