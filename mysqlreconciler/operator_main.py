# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#


from .controller import config as myconfig
import asyncio
import kopf
import os
import logging

# this will register operator event handlers
from .controller import operator

from .controller import k8sobject


k8sobject.g_component = "operator"
k8sobject.g_host = os.getenv("HOSTNAME")


def main(argv):
    myconfig.config_from_env()

    kopf.configure(verbose=True if myconfig.debug >= 1 else False)

    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s - [%(levelname)s] [%(name)s] %(message)s',
                        datefmt="%Y-%m-%dT%H:%M:%S")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    # deployed as a single replica, there are no peers to coordinate with
    loop.run_until_complete(kopf.operator(
        clusterwide=True,
        standalone=True
    ))

    return 0


if __name__ == "__main__":
    main([])
