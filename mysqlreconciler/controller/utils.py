# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from importlib import metadata
from typing import Iterable, List, Optional
import datetime
import os


def unique(items: Iterable[str]) -> List[str]:
    """Drop empty and repeated entries, keeping the first occurrence"""
    seen = set()
    result = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result


def owner_reference(api_version: str, kind: str, name: str, uid: str,
                    controller: bool = False) -> dict:
    return {
        "apiVersion": api_version,
        "kind": kind,
        "name": name,
        "uid": uid,
        "controller": controller,
        "blockOwnerDeletion": controller
    }


def ensure_owner_reference(owners: Optional[List[dict]], ref: dict) -> List[dict]:
    """
    Return a copy of owners that contains ref. An existing reference with the
    same kind and name is replaced, never duplicated.
    """
    result = []
    found = False
    for owner in owners or []:
        if owner.get("kind") == ref["kind"] and owner.get("name") == ref["name"]:
            if not found:
                result.append(dict(ref))
                found = True
        else:
            result.append(owner)
    if not found:
        result.append(dict(ref))
    return result


def meta_namespace_key(namespace: Optional[str], name: str) -> str:
    if namespace:
        return namespace+"/"+name
    return name


def log_banner(path: str, logger) -> None:
    from . import config

    kopf_version = metadata.version('kopf')
    ts = datetime.datetime.fromtimestamp(os.stat(path).st_mtime).isoformat()

    path = os.path.basename(path)
    logger.info(
        f"MySQL Reconciler/{path}={config.OPERATOR_VERSION} timestamp={ts} kopf={kopf_version} uid={os.getuid()}")
