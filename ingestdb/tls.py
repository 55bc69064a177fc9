"""Client TLS context construction for database connections."""

from __future__ import annotations

import ssl

from .config import DatabaseConfig


class TLSConfigError(ValueError):
    """Raised when TLS material cannot be read or parsed."""


def ssl_argument(config: DatabaseConfig) -> ssl.SSLContext | bool:
    """Translate the config's sslmode and certificate paths for the driver."""

    if not config.tls_enabled:
        return False
    return build_ssl_context(config)


def build_ssl_context(config: DatabaseConfig) -> ssl.SSLContext:
    """Build a client context, loading the CA bundle and client chain if set."""

    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    if config.ca_cert:
        try:
            context.load_verify_locations(cafile=config.ca_cert)
        except (OSError, ssl.SSLError) as exc:
            raise TLSConfigError(f"Failed to load CA certificate '{config.ca_cert}': {exc}") from exc
    if config.client_cert:
        try:
            context.load_cert_chain(config.client_cert, keyfile=config.client_key or None)
        except (OSError, ssl.SSLError) as exc:
            raise TLSConfigError(
                f"Failed to load client certificate '{config.client_cert}' "
                f"(key '{config.client_key or config.client_cert}'): {exc}"
            ) from exc

    if config.sslmode == "verify-full":
        context.check_hostname = True
        context.verify_mode = ssl.CERT_REQUIRED
    elif config.sslmode == "verify-ca" or config.ca_cert:
        # libpq treats a configured root certificate as a request to verify it.
        context.check_hostname = False
        context.verify_mode = ssl.CERT_REQUIRED
    else:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


__all__ = ["TLSConfigError", "build_ssl_context", "ssl_argument"]
