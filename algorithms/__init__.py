"""
Algorithms package for the Resource Manager Simulator.
Contains deadlock detection and recovery implementations.
"""
