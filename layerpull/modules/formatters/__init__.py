from .formatters import (
    DOCKER_HUB_REGISTRY,
    format_platform,
    human_readable_size,
    registry_base_url,
    registry_host,
)
