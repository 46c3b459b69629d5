"""Utilities shared by the smart factor solver and its CLI.

Kept separate from the factor math so instrumentation can change without
touching linearization code.
"""
