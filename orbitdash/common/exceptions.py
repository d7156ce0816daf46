"""
Custom Exception Classes for orbitdash

Hierarchical exception structure for error handling across services.
"""


class OrbitdashError(Exception):
    """Base exception for all orbitdash errors"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(OrbitdashError):
    """Missing or invalid user-supplied fields"""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFoundError(OrbitdashError):
    """Unknown record id"""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} not found")


class IconError(OrbitdashError):
    """Icon could not be materialized"""


class DownloadError(IconError):
    """Remote icon fetch failed"""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class UnsupportedTypeError(IconError):
    """Remote icon has no recognizable image type"""

    def __init__(self, url: str, content_type: str | None = None):
        self.url = url
        self.content_type = content_type
        super().__init__("Unsupported icon type")


class StorageError(OrbitdashError):
    """Database or icon area could not be written"""
