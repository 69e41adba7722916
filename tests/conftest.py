import threading
import time

import botocore.session
import pytest
from botocore.stub import Stubber

from blob2s3 import Blob, BlobStore, Page
from blob2s3.errors import ErrorKind, FetchError, StoreError

BUCKET = 'backup-bucket'


def make_blobs(count, prefix='production/'):
    return [
        Blob(key='%sfile-%03d.png' % (prefix, i),
             url='https://store.public.blob.vercel-storage.com/file-%03d' % i)
        for i in range(count)]


class FakeSource(BlobStore):
    """Blob store serving fixed pages, recording fetches and concurrency."""

    def __init__(self, pages, failing_urls=(), delay=0.0):
        super().__init__(token='test-token')
        self.pages = pages
        self.failing_urls = set(failing_urls)
        self.delay = delay
        self.list_calls = []
        self.fetched = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def list(self, cursor=None, limit=1000, prefix=''):
        self.list_calls.append(cursor)
        index = int(cursor) if cursor else 0
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return Page(blobs=self.pages[index], cursor=next_cursor)

    def fetch(self, url):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            time.sleep(self.delay)
            self.fetched.append(url)
            if url in self.failing_urls:
                raise FetchError('Failed to fetch file: 500 Internal Server Error')
            return b'content of ' + url.encode()
        finally:
            with self._lock:
                self.in_flight -= 1


class FakeDestination:
    """In-memory destination with injectable failures."""

    def __init__(self, existing=(), put_errors=None, bucket_missing=False):
        self.bucket = BUCKET
        self.objects = {key: b'' for key in existing}
        self.put_errors = put_errors or {}
        self.bucket_missing = bucket_missing
        self.checked = []
        self.written = []
        self._lock = threading.Lock()

    def check_bucket(self):
        if self.bucket_missing:
            raise StoreError(
                ErrorKind.MISSING_BUCKET, None,
                'Bucket %s does not exist' % self.bucket)

    def exists(self, key):
        with self._lock:
            self.checked.append(key)
        return key in self.objects

    def put(self, key, body):
        kind = self.put_errors.get(key)
        if kind is not None:
            raise StoreError(kind, key, 'write failed for %s' % key)
        with self._lock:
            self.written.append(key)
            self.objects[key] = body


@pytest.fixture
def s3_client():
    session = botocore.session.get_session()
    return session.create_client(
        's3', region_name='eu-west-1',
        aws_access_key_id='AKIDEXAMPLE', aws_secret_access_key='secret')


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()

