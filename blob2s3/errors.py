"""Error types raised while copying blobs to S3.

Destination failures are reduced to a small closed set of kinds so that the
callers branch on `StoreError.kind` rather than on botocore error strings.
"""
import enum

from botocore.exceptions import ClientError, NoCredentialsError


class ErrorKind(enum.Enum):
    NOT_FOUND = 'not-found'
    ACCESS_DENIED = 'access-denied'
    MISSING_BUCKET = 'missing-bucket'
    TRANSIENT = 'transient'


# Kinds meaning every further call against the destination will fail too
FATAL_KINDS = frozenset({ErrorKind.ACCESS_DENIED, ErrorKind.MISSING_BUCKET})

NOT_FOUND_CODES = frozenset({'404', 'NotFound', 'NoSuchKey'})
MISSING_BUCKET_CODES = frozenset({'NoSuchBucket'})
ACCESS_DENIED_CODES = frozenset({
    '403', 'AccessDenied', 'Forbidden', 'InvalidAccessKeyId',
    'SignatureDoesNotMatch', 'ExpiredToken', 'InvalidToken'})


class ConfigError(Exception):
    """Invalid or incomplete run configuration.

    :param message: Description of the problem.
    :param missing: List of `(flag, environment variable)` pairs for every
        required parameter that was supplied neither way.
    """

    def __init__(self, message, missing=()):
        super().__init__(message)
        self.missing = list(missing)


class StoreError(Exception):
    """A destination store operation failed for `key`."""

    def __init__(self, kind, key, message):
        super().__init__(message)
        self.kind = kind
        self.key = key

    @property
    def is_fatal(self):
        return self.kind in FATAL_KINDS


class FetchError(Exception):
    """The source object could not be downloaded."""


class FatalRunError(Exception):
    """The run cannot continue, e.g. the source listing failed."""


class RunAborted(Exception):
    """Raised by the orchestrator when a fatal error stopped the run.

    :param totals: The `Totals` of every item resolved before the abort.
    :param cause: The fatal error which stopped the run.
    """

    def __init__(self, totals, cause):
        super().__init__(str(cause))
        self.totals = totals
        self.cause = cause


def classify_error(error, bucket, key):
    """Turn a botocore exception into a `StoreError`.

    :param error: The exception raised by the S3 client.
    :param bucket: Name of the destination bucket, used in messages.
    :param key: The object key the failing call was about.
    :return: A `StoreError` of the matching `ErrorKind`.
    """
    if isinstance(error, NoCredentialsError):
        return StoreError(
            ErrorKind.ACCESS_DENIED, key,
            'No AWS credentials found - check your configuration')

    if not isinstance(error, ClientError):
        return StoreError(
            ErrorKind.TRANSIENT, key,
            'S3 request failed for %s: %s' % (key, error))

    code = str(error.response.get('Error', {}).get('Code', ''))
    status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')

    if code in MISSING_BUCKET_CODES:
        return StoreError(
            ErrorKind.MISSING_BUCKET, key,
            'Bucket %s does not exist' % bucket)
    if code in ACCESS_DENIED_CODES or status == 403:
        return StoreError(
            ErrorKind.ACCESS_DENIED, key,
            'Access denied to S3 bucket - check your credentials')
    if code in NOT_FOUND_CODES or status == 404:
        return StoreError(ErrorKind.NOT_FOUND, key, '%s not found' % key)
    return StoreError(
        ErrorKind.TRANSIENT, key,
        'S3 request failed for %s: %s - %s' % (key, code, error))
