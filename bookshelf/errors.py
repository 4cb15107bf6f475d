"""Domain errors. Each carries the HTTP status the API answers with."""
from fastapi import status


class LibraryError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request failed"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotAuthenticated(LibraryError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"


class PolicyViolation(LibraryError):
    """A row or object failed an insert check of the access policy."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Row violates access policy"


class NotFound(LibraryError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class QuotaExceeded(LibraryError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_detail = "This file would exceed your storage limit of 200MB"


class ObjectTooLarge(LibraryError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_detail = "Object exceeds the bucket size limit"


class UnsupportedFileType(LibraryError):
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
    default_detail = "Unsupported file type"


class StorageError(LibraryError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Storage request failed"


class MetadataError(LibraryError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Failed to save book information"


class DeleteFailed(LibraryError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Failed to delete book"
