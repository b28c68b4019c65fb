"""Deployment target resolution.

A target is derived from two selectors: the server class (``qa``, ``prod``)
and the version label naming the application slot on that host. Several
versions of the application can run side by side on one host, each under
its own directory and virtual host.
"""

import logging
import posixpath
import re
from dataclasses import dataclass

from railsdeploy.config.schema import RailsDeployConfig
from railsdeploy.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Single path segment that is also a valid DNS label
VERSION_LABEL_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")


@dataclass(frozen=True)
class Target:
    """Resolved remote deployment destination."""

    server_class: str
    version_label: str
    domain: str
    user: str
    base_path: str
    runtime_env: str
    main_domain: str
    port: int | None = None

    @property
    def shared_path(self) -> str:
        return posixpath.join(self.base_path, "shared")

    @property
    def releases_path(self) -> str:
        return posixpath.join(self.base_path, "releases")

    @property
    def current_path(self) -> str:
        return posixpath.join(self.base_path, "current")

    @property
    def credentials_path(self) -> str:
        """Remote database.yml read by the database and web server tasks."""
        return posixpath.join(self.shared_path, "config", "database.yml")

    @property
    def fqdn(self) -> str:
        """Virtual host name: the version label under the class's main domain."""
        return f"{self.version_label}.{self.main_domain}"

    @property
    def ssh_destination(self) -> str:
        return f"{self.user}@{self.domain}"


def resolve(
    server_class: str | None,
    version_label: str | None,
    config: RailsDeployConfig | None = None,
) -> Target:
    """Resolve the deployment target from the two selectors.

    The version label is used verbatim in the remote path and the virtual
    host name. Callers that accept it from users should check it with
    :func:`validate_version_label` first.

    Args:
        server_class: Server class name; must be one of the configured classes
        version_label: Application slot on the host
        config: Configuration holding the server class table

    Returns:
        The resolved Target.

    Raises:
        ConfigurationError: If the server class is unset or unknown.
    """
    if config is None:
        config = RailsDeployConfig()

    if not server_class:
        raise ConfigurationError("A server needs to be specified.")

    server = config.servers.get(server_class)
    if server is None:
        known = ", ".join(sorted(config.servers))
        raise ConfigurationError(
            f"Unknown server '{server_class}'. Known servers: {known}"
        )

    version_label = version_label or ""
    base_path = posixpath.join(config.deploy_root, server_class, version_label)

    target = Target(
        server_class=server_class,
        version_label=version_label,
        domain=server.domain,
        user=server.user,
        base_path=base_path,
        runtime_env=server.runtime_env,
        main_domain=server.main_domain,
        port=server.port,
    )
    logger.debug("Resolved target %s -> %s:%s", server_class, target.ssh_destination, base_path)
    return target


def validate_version_label(version_label: str | None) -> str:
    """Check that a version label is safe to use as a path segment and host label.

    Returns:
        The label, unchanged.

    Raises:
        ConfigurationError: If the label is missing or contains anything other
            than letters, digits and inner hyphens.
    """
    if not version_label:
        raise ConfigurationError("A version needs to be specified.")
    if not VERSION_LABEL_RE.match(version_label):
        raise ConfigurationError(
            f"Invalid version '{version_label}': use letters, digits and '-' "
            "(max 63 characters, must not start or end with '-')"
        )
    return version_label
