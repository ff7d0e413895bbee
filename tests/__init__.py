"""
Centralized test suite for the Contact Submissions Admin.

Test Organization:
- fakes.py - In-memory remote data service used by every test
- integration/ - End-to-end flows through the HTTP API
- App-specific tests remain in their respective app directories (e.g., accounts/tests.py)
"""
