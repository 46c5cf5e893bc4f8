"""
Shared helpers for parsing, attribute maps and media file names.
"""
