class GalleryError(Exception):
    status_code = 500


class ConfigurationError(GalleryError):
    """A required external service is not configured."""
    status_code = 503


class RemoteError(GalleryError):
    """A call to the database, storage or a third-party API failed."""
    status_code = 502


class PermissionDenied(GalleryError):
    status_code = 403


class NotFound(GalleryError):
    status_code = 404


class WizardError(GalleryError):
    """Invalid upload wizard transition or input."""
    status_code = 400


class InvalidRequest(GalleryError):
    status_code = 400


class AuthenticationFailed(GalleryError):
    status_code = 401
