"""
Utilities package for the Resource Manager Simulator.
Contains configuration, logging, scenario loading and worker pools.
"""
