import os


def pytest_configure(config):
    """Set up environment variables before any modules are imported."""
    os.environ["NAMESPACE"] = "kubevirt"
    os.environ["KUBEVIRT_GROUP"] = "kubevirt.io"


pytest_configure(None)

from fixtures.common_fixtures import *  # noqa
