DOCKER_HUB_REGISTRY = "index.docker.io"
DOCKER_HUB_API_HOST = "registry-1.docker.io"


def human_readable_size(size):
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} TB"


## Docker Hub answers the API on a different host than the one used in references

def registry_host(registry):
    if registry in ("docker.io", DOCKER_HUB_REGISTRY):
        return DOCKER_HUB_API_HOST
    return registry


def registry_base_url(registry, repository, plain_http=False):
    scheme = "http" if plain_http else "https"
    return f"{scheme}://{registry_host(registry)}/v2/{repository}"


def format_platform(platform):
    """Render an OCI platform object as os/arch[/variant]."""
    if not platform:
        return "unknown"
    parts = [platform.get("os", "unknown"), platform.get("architecture", "unknown")]
    if platform.get("variant"):
        parts.append(platform["variant"])
    return "/".join(parts)
