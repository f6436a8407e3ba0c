import os


def pytest_configure(config):
    """Set up environment variables before any modules are imported."""
    os.environ["NAMESPACE"] = "kubevirt"
    os.environ["MONITOR_SERVICE_ACCOUNT"] = "kubevirt-monitoring"
    os.environ["EXPECTATIONS_TIMEOUT"] = "300"


pytest_configure(None)

from fixtures.operator_fixtures import *  # noqa
