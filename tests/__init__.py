"""
Test suite for the Voyager verifier

- Unit tests for manifest parsing, project resolution and file collection
- Payload, API client and job status tests (no real HTTP calls)
- History store tests against in-memory and SQLite backends
- CLI tests through click's CliRunner
"""
