from .reference import (
    DEFAULT_TAG,
    OCI_SCHEME,
    Descriptor,
    ImageReference,
    Manifest,
    ReferenceKind,
    parse_image_ref,
)
from .resolver import ReferenceResolver
