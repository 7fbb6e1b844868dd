"""
Inbound telephony callbacks: HTTP surface and call state machine.

Keep import side-effect free.
"""
