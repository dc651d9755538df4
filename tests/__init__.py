"""
Tests package for the EchoSky boards client

Test organization:
- test_codec.py / test_validation.py / test_records.py: pure helpers and record schemas
- test_session.py / test_context.py / test_agent.py: session persistence and the atproto transport
- test_boards.py / test_reactions.py: aggregation, creation and reactions against the FakeAgent
- test_retry.py / test_config.py / test_cli.py: retry policy, configuration, logging and the CLI
- conftest.py: Shared fixtures and the in-memory FakeAgent
"""
