# compositional_tools/cli/__init__.py
"""
Command-line interface for compositional_tools.

- analyze_cli.py: run the full analysis on CSV/TSV inputs
"""
