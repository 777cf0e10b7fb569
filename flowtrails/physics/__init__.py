"""
Simulation physics for FlowTrails: coherent noise, the flow field grid and
the particle system.
"""
