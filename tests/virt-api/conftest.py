import os


def pytest_configure(config):
    """Set up environment variables before any modules are imported."""
    os.environ["NAMESPACE"] = "kubevirt"
    os.environ["LAUNCHER_LABEL_SELECTOR"] = "kubevirt.io=virt-launcher"


pytest_configure(None)

from fixtures.admission_fixtures import *  # noqa
