"""
Test Actions Package
Tests for the reminder dispatcher and its transports
"""
