from .auth import Credentials, RegistryAuth, resolve_credentials
