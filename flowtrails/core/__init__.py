"""
External inputs consumed by the simulation.
"""
