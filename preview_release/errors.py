"""Error types for preview-release.

Every fatal error derives from :class:`PreviewReleaseError` so the CLI can
report it as a single run failure with the original message intact.
Recoverable conditions (a missing release checkpoint, an ambiguous registry
lookup) are handled where they occur and never reach the CLI.
"""

from __future__ import annotations


class PreviewReleaseError(RuntimeError):
    """Base class for all run-level failures."""


class ConfigError(PreviewReleaseError):
    """Required input is missing or malformed."""


class CheckpointLookupError(PreviewReleaseError):
    """The release-marker commit search could not be completed.

    Always recovered by falling back to the trunk reference.
    """


class InventoryError(PreviewReleaseError):
    """The workspace package list could not be read."""


class ChangeDetectionError(PreviewReleaseError):
    """Changed files could not be computed.

    Fatal: an empty diff cannot be assumed when git itself failed.
    """


class PackageError(PreviewReleaseError):
    """A failure tied to one package.

    Attributes:
        package: Name of the package being processed.
        detail: Message from the underlying cause.
    """

    action = "process"

    def __init__(self, package: str, detail: str) -> None:
        self.package = package
        self.detail = detail
        super().__init__(f"Failed to {self.action} packages: {package}: {detail}")


class VersionBumpError(PackageError):
    """``pnpm version`` failed or printed something that isn't a version."""

    action = "bump"


class PublishError(PackageError):
    """``pnpm publish`` failed for a package."""

    action = "publish"


class TokenExchangeError(PublishError):
    """Trusted-publishing token exchange failed for a package."""


class MissingCredentialError(PreviewReleaseError):
    """No way to authenticate against the registry, but a publish is needed."""


class RedeployError(PreviewReleaseError):
    """The service redeploy could not be started."""
