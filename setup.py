from setuptools import setup, find_packages

def get_version():
    """Read version from blob2s3/version.py.
    """
    return open('blob2s3/version.py').read().split("'")[1]


setup(
    name='blob2s3',
    version=get_version(),
    packages=find_packages(exclude=['tests']),
    description='Vercel Blob to S3 backup',
    long_description='Copy Vercel Blob objects to S3 concurrently, '
                     'skipping the ones already backed up',
    python_requires='>=3.6',
    install_requires=[
        'boto3 >=1.7.14, <2',
        'botocore >=1.10.14, <2',
        'docopt >=0.6.2',
        'requests >=2.20',
        'python-dotenv >=0.10',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points="""
        [console_scripts]
        blob2s3 = blob2s3.cli:main
    """,
)
