"""
Test suite for tablesync.

Unit tests run against an in-memory DynamoDB client, so no service
endpoint or credentials are needed.
"""
