"""Built-in secret shapes."""
from .basic_auth import BasicAuthSecretProvider
from .opaque import OpaqueSecretProvider
from .ssh import SshAuthSecretProvider
from .tls import TlsSecretProvider

__all__ = [
    "BasicAuthSecretProvider",
    "OpaqueSecretProvider",
    "SshAuthSecretProvider",
    "TlsSecretProvider",
]
