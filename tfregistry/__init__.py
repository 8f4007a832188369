"""tfregistry: a private Terraform module and provider registry.

Modules are served from an object store (S3, Azure Blob, GCS or a local
directory). A version that has never been downloaded is materialized on
first request: its tagged source is cloned, packed into a zip archive and
uploaded, and every later request is served from the store.
"""

__version__ = "0.1.0"

from tfregistry.core.cache import MaterializationCache, MaterializationError
from tfregistry.models.coordinates import ModuleCoordinate, SourceDescriptor

__all__ = [
    "MaterializationCache",
    "MaterializationError",
    "ModuleCoordinate",
    "SourceDescriptor",
    "__version__",
]
