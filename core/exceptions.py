"""
Exception hierarchy for the layer record core.

Every error raised on purpose by the core derives from LayerRecordError so an
embedding application can catch them as one family.
"""


class LayerRecordError(Exception):
    """Base class for layer record errors."""


class UsageError(LayerRecordError):
    """Programmer error: an operation was invoked out of order or on bad input."""


class UnsupportedCallError(UsageError):
    """Accessor or mutator not provided by the current facade flavour."""

    def __init__(self, message: str = 'Call not supported.'):
        super().__init__(message)


class UnsupportedLayerTypeError(LayerRecordError):
    """Server reported a sublayer type outside the supported set."""

    def __init__(self, server_type):
        super().__init__(f"Unexpected layer type: {server_type}")
        self.server_type = server_type


class AttributeLoadError(LayerRecordError):
    def __init__(self, message: str = 'Attrib loading failed'):
        super().__init__(message)


class FeatureCountError(LayerRecordError):
    def __init__(self, message: str = 'error getting feature count'):
        super().__init__(message)


class ProjectionError(LayerRecordError):
    """Spatial reference could not be resolved to a usable projection."""


class ServiceRequestError(LayerRecordError):
    """REST request failed or the service answered with an error payload."""
