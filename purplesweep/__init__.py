"""
Purple Sweep - host and domain security-posture scanner.

Detects local privilege-escalation misconfigurations and probes
lateral-movement reachability across a set of hosts.
"""

__version__ = '1.0.0'
