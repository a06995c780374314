"""
Test suite for schemasync.

Unit tests for the schema model, codec, diff engine, task layer,
gateway, configuration and CLI live under ``unit``.
"""
