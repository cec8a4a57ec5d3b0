"""Test package for Quiz Battle.

Core tests drive the battle rules with a hand-advanced fake clock, so no
test sleeps. UI smoke tests use pygame's dummy video driver to avoid opening
real windows. Run ``pytest`` from the project root.
"""
