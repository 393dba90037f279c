"""
Jira integration services: signed client, OAuth handshake, REST gateway and worklog sync
"""
