"""
fleetctl - operator CLI for fleetdock.
"""
