# compositional_tools/utils/__init__.py
"""Worker pool and resource helpers."""
