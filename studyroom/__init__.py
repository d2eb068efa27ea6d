"""
Study room page service.

Converts uploaded PDF documents into cached page images and serves them
to the study room viewer through signed URLs.
"""

__version__ = "0.1.0"
