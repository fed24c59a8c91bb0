"""
Test Client Package
Tests for the device-side scheduler and API client
"""
