"""Error kinds raised while resolving and deploying video links."""

from __future__ import annotations


class DeployError(Exception):
    """Base exception for link deployment failures."""

    kind = "deploy_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInput(DeployError):
    """Malformed URL or empty request."""

    kind = "invalid_input"

    def __init__(self, message: str = "URL format is invalid"):
        super().__init__(message)


class InvalidReference(DeployError):
    """URL is well-formed but no video reference could be found in it."""

    kind = "invalid_reference"

    def __init__(self, message: str = "Could not extract a video reference from URL"):
        super().__init__(message)


class UnsupportedPlatform(DeployError):
    kind = "unsupported_platform"

    def __init__(self, message: str = "This platform is not supported"):
        super().__init__(message)


class ReadFailure(DeployError):
    kind = "read_failure"

    def __init__(self, message: str = "Failed to read file"):
        super().__init__(message)


class MetadataUnavailable(DeployError):
    """Optional metadata enrichment failed. Never fatal."""

    kind = "metadata_unavailable"

    def __init__(self, message: str = "Video metadata is unavailable"):
        super().__init__(message)


class SurfaceUnavailable(DeployError):
    kind = "surface_unavailable"

    def __init__(self, message: str = "Video stage is not available"):
        super().__init__(message)


class PlaybackFailed(DeployError):
    """The stage accepted an item but could not play it."""

    kind = "playback_failed"

    def __init__(self, message: str = "Video stage could not play the item"):
        super().__init__(message)
