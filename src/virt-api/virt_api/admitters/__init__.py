from virt_api.admitters.node_admitter import NodeAdmitter

__all__ = ["NodeAdmitter"]
