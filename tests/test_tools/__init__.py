"""
Test Tools Package
Tests for the tools module (recurrence expander, trigger evaluator)
"""
