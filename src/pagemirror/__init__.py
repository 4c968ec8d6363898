"""pagemirror - static mirrors of client-rendered websites."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pagemirror")
except PackageNotFoundError:
    __version__ = "dev"
