"""Attribute merge module"""

from .attribute_merge import AttributeMerge, MergeMode, DuplicatePolicy, merge

__all__ = [
    'AttributeMerge',
    'MergeMode',
    'DuplicatePolicy',
    'merge'
]
