"""
Models package for the Resource Manager Simulator.
Contains the virtual clock, the resource ledger and the inbound event types.
"""
