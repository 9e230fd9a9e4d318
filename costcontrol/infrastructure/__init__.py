"""
Infrastructure Layer - repository contracts and in-memory implementations.
"""
