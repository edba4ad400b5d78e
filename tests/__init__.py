"""
Mapper test suite.

Structure:
- unit/: coordinate mapping, tile store, marker registry, trajectory,
  localizer, report/session export, rendering, config, detector
"""
