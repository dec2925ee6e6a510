"""
Test suite for curve_cluster.

This package contains all tests organized by component:
- test_algorithms/: Tests for the clustering pipeline and its parts
- test_utils/: Tests for logging helpers
- test_config.py: Tests for environment configuration
"""
