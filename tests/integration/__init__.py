"""
railtube - integration test package

File: tests/integration/__init__.py

Purpose
- Test package marker file.

Functional requirements
- Must not touch real package managers or the network.
"""
