from setuptools import setup, find_packages
import re

# Read version from gmdash/__init__.py
with open('gmdash/__init__.py') as f:
    version = re.search(r'^__version__ = ["\']([^"\']+)["\']', f.read(), re.MULTILINE).group(1)

setup(
    name='gmdash',
    version=version,
    packages=find_packages(include=['gmdash', 'gmdash.*']),
    python_requires='>=3.9',
    install_requires=[
        'google-api-python-client',
        'google-auth',
        'google-auth-oauthlib',
        'oauthlib',
        'requests',
        'python-dotenv',
        'click>=8.0',
        'PyYAML',
    ],
    extras_require={
        'test': ['pytest', 'httplib2'],
    },
    entry_points={
        'console_scripts': [
            'gmdash=gmdash.cli.__main__:main',
        ],
    },
    author='CLI Developer',
    description='Gmail dashboard core - OAuth credential lifecycle and Gmail message transforms, with a CLI.',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
)
