# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import kopf


class ConfigurationError(kopf.PermanentError):
    """
    Invalid configuration that can't be fixed by retrying, such as an
    unsupported issuer kind or a missing credential.
    """
    pass


class NotFoundError(kopf.TemporaryError):
    """
    Something we depend on doesn't exist (yet). Resolved by a later pass.
    """
    def __init__(self, msg: str, delay: float = 10):
        super().__init__(msg, delay=delay)


class TransientError(kopf.TemporaryError):
    def __init__(self, msg: str, delay: float = 5):
        super().__init__(msg, delay=delay)
