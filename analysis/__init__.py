"""
Analysis package for the Resource Manager Simulator.
Contains the event log, run metrics and resource table reporting.
"""
