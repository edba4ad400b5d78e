"""
Shared pieces: frame/detection types, YAML settings, JSON logging, small helpers.
"""
