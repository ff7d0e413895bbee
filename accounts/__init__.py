"""
Operator Accounts App

Sign-in, sign-out and session state for the single contact admin operator.
"""
