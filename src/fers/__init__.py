"""
fers — encrypted file sync.

Encrypt a local directory tree, park the blobs in an object store,
and pull them back down anywhere the passphrase travels.
"""

import os

__version__ = "0.1.0"
__author__ = "mingregister"

FERS_HOME = os.environ.get("FERS_HOME", "~/.fers")
