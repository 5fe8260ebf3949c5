"""
Built-in tools.
"""

# pyright: reportUnusedImport=false
# flake8: noqa

from .shell import ShellTool, ShellInput
from .serpapi import SerpApiTool, SearchInput, SearchResult
