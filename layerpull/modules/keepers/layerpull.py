# layerpull.py
# Resolve a reference and extract its first layer in one call.

import logging
from typing import Optional

from layerpull.config import Config
from layerpull.modules.auth import RegistryAuth, resolve_credentials
from layerpull.modules.finders.resolver import ReferenceResolver
from layerpull.modules.keepers.downloaders import RegistryClient
from layerpull.modules.keepers.extractor import ExtractResult, LayerExtractor


class ClientFactory:
    """Builds one registry client per repository and invalidates their sessions on close()."""

    def __init__(self, config: Config):
        self.config = config
        self._clients = {}

    def __call__(self, ref) -> RegistryClient:
        key = (ref.registry, ref.repository)
        if key not in self._clients:
            credentials = resolve_credentials(
                ref.registry,
                username=self.config.username,
                password=self.config.password,
                docker_config=self.config.docker_config,
            )
            auth = RegistryAuth(
                ref.registry,
                ref.repository,
                credentials=credentials,
                plain_http=self.config.is_insecure(ref.registry),
                timeout=self.config.timeout,
            )
            self._clients[key] = RegistryClient(auth)
        return self._clients[key]

    def close(self):
        for client in self._clients.values():
            client.auth.invalidate()
        self._clients = {}


def pull_layer(
    raw_ref: str,
    config: Config,
    logger: Optional[logging.Logger] = None,
    output_dir: Optional[str] = None,
    client_factory=None,
) -> ExtractResult:
    """
    Resolve `raw_ref` and write its first layer to `<dir>/layer.tar.gz`.

    Args:
        raw_ref: oci:// reference
        config: loaded configuration
        logger: diagnostics sink, defaults to the "layerpull" logger
        output_dir: write here instead of a fresh temporary directory
        client_factory: override how registry clients are built

    Raises:
        LayerPullError: any resolution or extraction failure
    """
    logger = logger or logging.getLogger("layerpull")
    factory = client_factory or ClientFactory(config)
    try:
        resolver = ReferenceResolver(factory, logger=logger)
        ref = resolver.resolve(raw_ref)

        extractor = LayerExtractor(
            factory(ref),
            logger=logger,
            verify_digest=config.verify_digest,
            platform=config.platform,
            tmp_root=config.tmp_dir,
        )
        return extractor.extract(ref, output_dir=output_dir)
    finally:
        # always invalidate auth sessions when done
        if hasattr(factory, "close"):
            factory.close()
