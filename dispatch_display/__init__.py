"""
Dispatch display relay: routes calls from the 911 feed to the station
displays of the area they belong to, with driving directions attached.
"""

__version__ = "1.0.0"
