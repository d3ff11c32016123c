"""gmdash - Gmail dashboard core.

Namespace package containing:
- gmdash.sdk: OAuth credential lifecycle and Gmail message transforms
- gmdash.cli: Command-line interface over the SDK
"""

__version__ = "0.1.0"
