"""
Input handling for FlowTrails.
"""
