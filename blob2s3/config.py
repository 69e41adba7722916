"""Build the immutable run configuration from CLI options and environment."""
from collections import namedtuple

from blob2s3.errors import ConfigError

DEFAULT_BATCH_SIZE = '10'
DEFAULT_PREFIX = 'production/'

RunConfig = namedtuple('RunConfig', [
    'batch_size', 'prefix', 'region', 'bucket', 'access_key_id',
    'secret_access_key', 'blob_token'])

# (RunConfig field, CLI flag, environment variable)
REQUIRED = [
    ('region', '--region', 'AWS_REGION'),
    ('access_key_id', '--access-key-id', 'AWS_ACCESS_KEY_ID'),
    ('secret_access_key', '--secret-key', 'AWS_SECRET_ACCESS_KEY'),
    ('bucket', '--bucket', 'AWS_BUCKET_NAME'),
    ('blob_token', '--blob-token', 'BLOB_READ_WRITE_TOKEN'),
]


def parse_batch_size(value):
    """Return `value` as a positive integer or raise `ConfigError`."""
    try:
        batch_size = int(value)
    except (TypeError, ValueError):
        raise ConfigError('Batch size must be a positive number')
    if batch_size < 1:
        raise ConfigError('Batch size must be a positive number')
    return batch_size


def load_config(options, environ):
    """Merge docopt `options` with `environ` into a `RunConfig`.

    Flags take precedence over environment variables, which take precedence
    over the defaults of batch size and prefix.

    :param options: The dictionary returned by docopt.
    :param environ: Mapping of environment variables, usually `os.environ`.
    :return: The `RunConfig`.
    :raise ConfigError: When a required parameter is missing or the batch
        size is invalid. `missing` lists the missing `(flag, variable)`.
    """
    values = {}
    missing = []
    for field, flag, variable in REQUIRED:
        values[field] = options.get(flag) or environ.get(variable)
        if not values[field]:
            missing.append((flag, variable))
    if missing:
        raise ConfigError('Missing required parameters', missing)

    batch_size = (
        options.get('--batch-size') or environ.get('BATCH_SIZE')
        or DEFAULT_BATCH_SIZE)
    prefix = (
        options.get('--prefix') or environ.get('BLOB_PREFIX')
        or DEFAULT_PREFIX)

    return RunConfig(
        batch_size=parse_batch_size(batch_size), prefix=prefix, **values)
