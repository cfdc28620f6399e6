"""
Staged events: sensitive user mutations (register, login, delete) that are
applied only when the one-time key handed out at staging time is presented.
"""
