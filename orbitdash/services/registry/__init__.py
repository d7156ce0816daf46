"""
Service catalog: bookmark records plus their icon files.
"""

from .icons import IconManager, RemoteIcon, UploadedIcon
from .models import ServiceCreate, ServiceRecord, ServiceUpdate
from .service import ServiceRegistry

__all__ = [
    "IconManager",
    "RemoteIcon",
    "ServiceCreate",
    "ServiceRecord",
    "ServiceRegistry",
    "ServiceUpdate",
    "UploadedIcon",
]
