"""Backup a Vercel Blob store to an S3 bucket.

Objects already present in the bucket are skipped, so an interrupted run can
simply be started again. Every option can also be given through the
environment variable shown, a `.env` file in the working directory is read.

Usage:
    blob2s3 [options]

Options:
    -b,--batch-size=<BATCH_SIZE>    Number of files to process concurrently,
                                    or BATCH_SIZE, 10 when neither is given
    -p,--prefix=<PREFIX>            Prefix of the files to backup, or
                                    BLOB_PREFIX, production/ when neither is
                                    given
    --region=<REGION>               AWS region, or AWS_REGION
    --bucket=<BUCKET>               S3 bucket name, or AWS_BUCKET_NAME
    --access-key-id=<KEY_ID>        AWS access key ID, or AWS_ACCESS_KEY_ID
    --secret-key=<SECRET>           AWS secret access key, or
                                    AWS_SECRET_ACCESS_KEY
    --blob-token=<TOKEN>            Vercel Blob read-write token, or
                                    BLOB_READ_WRITE_TOKEN
    --log=<LEVEL>                   Logging level, one of DEBUG, INFO,
                                    WARNING, ERROR, CRITICAL [default: INFO]
    -h,--help                       Show this screen
    --version                       Show the version
"""
import logging
import os
import sys

from docopt import docopt
from dotenv import load_dotenv

from blob2s3 import BlobStore, Destination, backup, create_client, version
from blob2s3.config import load_config
from blob2s3.errors import ConfigError, RunAborted

log = logging.getLogger(__name__)

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def report_missing(missing):
    print('Missing required parameters. Please provide either command line '
          'arguments or environment variables:', file=sys.stderr)
    for flag, variable in missing:
        print('  %s or %s' % (flag, variable), file=sys.stderr)


def main(argv=None):
    args = docopt(__doc__, argv=argv, version=version.__version__)

    level = args['--log'].upper()
    if level not in LOG_LEVELS:
        print('Logging level must be one of %s' % ', '.join(LOG_LEVELS),
              file=sys.stderr)
        sys.exit(1)
    logging.basicConfig(
        format='%(asctime)s %(levelname)s %(message)s', level=level)

    load_dotenv()

    try:
        config = load_config(args, os.environ)
    except ConfigError as e:
        if e.missing:
            report_missing(e.missing)
        else:
            print(e, file=sys.stderr)
        sys.exit(1)

    log.info('Starting backup process...')
    log.info('Batch size: %d', config.batch_size)
    log.info('Prefix: %s', config.prefix)
    log.info('Target bucket: %s', config.bucket)
    log.info('AWS Region: %s', config.region)

    source = BlobStore(config.blob_token)
    destination = Destination(create_client(config), config.bucket)

    try:
        backup(
            source, destination,
            batch_size=config.batch_size,
            prefix=config.prefix)
    except RunAborted as e:
        log.error('Backup process failed: %s', e.cause)
        log.error(
            'Files processed before abort: %d '
            '(transferred=%d, skipped=%d, failed=%d)',
            e.totals.processed, e.totals.transferred, e.totals.skipped,
            e.totals.failed)
        sys.exit(1)
