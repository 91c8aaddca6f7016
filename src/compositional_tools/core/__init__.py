# compositional_tools/core/__init__.py
"""
Core data model and pipeline.

- tables.py: FeatureTable, SampleMetadata, CompositionKind and keyed joins
- pipeline.py: run_full_analysis
"""
