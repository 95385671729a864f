"""
Tests for the Instagram automation engine: webhook intake, event routing,
rule matching, reply dispatch, stats recording and the management CLI.
"""
