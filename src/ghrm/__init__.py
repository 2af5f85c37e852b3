"""List, filter and bulk-clone the repositories of a GitHub account."""

__version__ = "0.1.0"
