import logging
from collections import namedtuple
from contextlib import contextmanager
from functools import partial
from multiprocessing.pool import ThreadPool

import boto3
from botocore.exceptions import BotoCoreError, ClientError
import requests

from blob2s3.errors import (
    ErrorKind, FatalRunError, FetchError, RunAborted, StoreError,
    classify_error)

log = logging.getLogger(__name__)

BLOB_API_URL = 'https://blob.vercel-storage.com'
BLOB_API_VERSION = '7'
LIST_LIMIT = 1000
LIST_TIMEOUT = 30
FETCH_TIMEOUT = 300

TRANSFERRED = 'transferred'
SKIPPED = 'skipped'
FAILED = 'failed'

Blob = namedtuple('Blob', ['key', 'url'])

Page = namedtuple('Page', ['blobs', 'cursor'])


class TransferResult(namedtuple('TransferResult', ['key', 'outcome', 'error'])):
    __slots__ = ()

    def __new__(cls, key, outcome, error=None):
        return super().__new__(cls, key, outcome, error)

    @property
    def detail(self):
        return str(self.error) if self.error is not None else None

    @property
    def is_fatal(self):
        return isinstance(self.error, StoreError) and self.error.is_fatal


class Totals:
    """Running outcome counters of a backup run."""

    def __init__(self):
        self.transferred = 0
        self.skipped = 0
        self.failed = 0

    @property
    def processed(self):
        return self.transferred + self.skipped + self.failed

    def add(self, result):
        setattr(self, result.outcome, getattr(self, result.outcome) + 1)

    def __repr__(self):
        return 'Totals(transferred=%d, skipped=%d, failed=%d)' % (
            self.transferred, self.skipped, self.failed)


def create_client(config):
    """Create a boto client for the destination bucket.

    :param config: The `RunConfig` holding region and credentials.
    :return: The `boto3.Client`.
    """
    return boto3.client(
        's3',
        region_name=config.region,
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key)


class BlobStore:
    """Read access to a Vercel Blob store.

    :param token: Read-write token of the blob store.
    :param session: `requests.Session` used for listing, a new one by default.
    :param api_url: Base url of the blob API.
    """

    def __init__(self, token, session=None, api_url=BLOB_API_URL):
        self.token = token
        self.session = session or requests.Session()
        self.api_url = api_url

    def list(self, cursor=None, limit=LIST_LIMIT, prefix=''):
        """Return one page of blobs under `prefix`.

        :param cursor: Cursor returned by the previous page, `None` on the
            first call.
        :param limit: Maximum number of blobs in the page.
        :param prefix: Only blobs whose pathname starts with it are listed.
        :return: A `Page`, its cursor is `None` once the listing is over.
        """
        params = {'limit': limit, 'prefix': prefix}
        if cursor:
            params['cursor'] = cursor
        headers = {
            'authorization': 'Bearer %s' % self.token,
            'x-api-version': BLOB_API_VERSION,
        }
        try:
            response = self.session.get(
                self.api_url, params=params, headers=headers,
                timeout=LIST_TIMEOUT)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise FatalRunError('Listing blobs failed: %s' % e) from e

        blobs = [
            Blob(key=item['pathname'], url=item['url'])
            for item in body.get('blobs', [])
            if item['pathname'].startswith(prefix)]

        next_cursor = body.get('cursor')
        if not body.get('hasMore', bool(next_cursor)):
            next_cursor = None
        return Page(blobs=blobs, cursor=next_cursor)

    def iter_pages(self, limit=LIST_LIMIT, prefix=''):
        """Follow the cursor from the first page to the last one."""
        cursor = None
        while True:
            page = self.list(cursor=cursor, limit=limit, prefix=prefix)
            yield page
            cursor = page.cursor
            if not cursor:
                return

    def fetch(self, url):
        """Download the full content of a blob.

        :param url: The blob url as returned by `list`.
        :return: The content, as bytes.
        """
        try:
            response = requests.get(url, timeout=FETCH_TIMEOUT)
        except requests.RequestException as e:
            raise FetchError('Failed to fetch file: %s' % e) from e
        if not response.ok:
            raise FetchError('Failed to fetch file: %s %s' % (
                response.status_code, response.reason))
        return response.content


class Destination:
    """The S3 bucket receiving the copies.

    The client is shared by every worker thread and never reconfigured.
    """

    def __init__(self, client, bucket):
        self.client = client
        self.bucket = bucket

    def check_bucket(self):
        """Raise a `MISSING_BUCKET` `StoreError` if the bucket does not exist.

        HEAD on an object of a missing bucket answers a bare 404, which
        `exists` cannot tell apart from a missing key. A denied or failed
        bucket lookup is only logged, since credentials may be allowed to
        read and write objects without being allowed `s3:ListBucket`.
        """
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            error = classify_error(e, self.bucket, None)
            if error.kind in (ErrorKind.NOT_FOUND, ErrorKind.MISSING_BUCKET):
                raise StoreError(
                    ErrorKind.MISSING_BUCKET, None,
                    'Bucket %s does not exist' % self.bucket) from e
            log.warning('Could not check bucket %s: %s', self.bucket, error)

    def exists(self, key):
        """Return whether `key` is already present in the bucket.

        A not-found answer is the expected case for new objects and returns
        `False`; every other failure raises a `StoreError`.
        """
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            error = classify_error(e, self.bucket, key)
            if error.kind is ErrorKind.NOT_FOUND:
                return False
            raise error from e
        return True

    def put(self, key, body):
        """Write raw bytes under `key`, without any metadata."""
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body)
        except (ClientError, BotoCoreError) as e:
            error = classify_error(e, self.bucket, key)
            if error.kind is ErrorKind.NOT_FOUND:
                # A 404 on write means the bucket itself is gone
                error = StoreError(
                    ErrorKind.MISSING_BUCKET, key,
                    'Bucket %s does not exist' % self.bucket)
            raise error from e


def transfer(blob, source, destination):
    """Copy one blob unless the destination already holds its key.

    Per-item problems are turned into a `failed` result, they never raise.

    :param blob: The `Blob` to copy.
    :param source: The `BlobStore` to fetch the content from.
    :param destination: The `Destination` to write to.
    :return: A `TransferResult`.
    """
    try:
        if destination.exists(blob.key):
            return TransferResult(blob.key, SKIPPED)
        body = source.fetch(blob.url)
        destination.put(blob.key, body)
    except (StoreError, FetchError) as e:
        return TransferResult(blob.key, FAILED, e)
    return TransferResult(blob.key, TRANSFERRED)


def log_result(result):
    if result.outcome == TRANSFERRED:
        log.info('Backed up: %s', result.key)
    elif result.outcome == SKIPPED:
        log.info('Skipped: %s (already exists)', result.key)
    else:
        log.error('Failed: %s: %s', result.key, result.detail)


def create_groups(items, size):
    """Split a list in consecutive groups of at most `size` items.

        >>> create_groups([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    return [items[i:i+size] for i in range(0, len(items), size)]


@contextmanager
def worker_pool(size):
    """Yield a `imap_unordered` like callable running `size` threads."""
    if size == 1:
        yield map
    else:
        with ThreadPool(processes=size) as pool:
            yield pool.imap_unordered


def backup(source, destination, batch_size=10, prefix='production/',
           page_size=LIST_LIMIT):
    """Copy every blob under `prefix` which is missing from the destination.

    Each page is split in groups of `batch_size` blobs. A group is copied
    concurrently and fully resolved before the next one starts, so there are
    never more than `batch_size` transfers in flight.

    :param source: The `BlobStore` to copy from.
    :param destination: The `Destination` to copy to.
    :param batch_size: Number of concurrent transfers, at least 1.
    :param prefix: Only blobs under this prefix are copied.
    :param page_size: Number of blobs requested per listing page.
    :return: The final `Totals`.
    :raise RunAborted: When the listing failed or the destination is
        misconfigured. Holds the totals resolved so far.
    """
    if batch_size < 1:
        raise ValueError('batch_size must be a positive number')

    totals = Totals()
    try:
        destination.check_bucket()
    except StoreError as e:
        raise RunAborted(totals, e) from e

    work = partial(transfer, source=source, destination=destination)

    with worker_pool(batch_size) as imap:
        pages = source.iter_pages(limit=page_size, prefix=prefix)
        while True:
            try:
                page = next(pages)
            except StopIteration:
                break
            except FatalRunError as e:
                raise RunAborted(totals, e) from e

            for group in create_groups(page.blobs, batch_size):
                fatal = None
                for result in imap(work, group):
                    log_result(result)
                    totals.add(result)
                    if result.is_fatal and fatal is None:
                        fatal = result.error
                log.info('Progress: %d files processed', totals.processed)
                if fatal is not None:
                    raise RunAborted(totals, fatal)

    log.info(
        'Backup complete. Total files processed: %d '
        '(transferred=%d, skipped=%d, failed=%d)',
        totals.processed, totals.transferred, totals.skipped, totals.failed)
    return totals
