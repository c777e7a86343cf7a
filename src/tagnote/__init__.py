"""
tagnote - a personal note store with tag-based organization.

Notes live as individual JSON files under a store root; tags are directories
of links pointing back at those files. A whole-store file lock serializes
mutations across processes while reads stay lock-free.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tagnote")
except PackageNotFoundError:
    __version__ = "0.3.0"
