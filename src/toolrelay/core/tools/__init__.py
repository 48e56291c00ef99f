"""Toolkit descriptors for toolrelay tools."""

from .code import code_toolkit
from .search import search_toolkit

DEFAULT_TOOLKIT_FACTORIES = [
    search_toolkit,
    code_toolkit,
]

__all__ = ["DEFAULT_TOOLKIT_FACTORIES", "code_toolkit", "search_toolkit"]
