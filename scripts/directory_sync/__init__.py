"""Resumable Slack directory crawler.

Walks workspaces, users, user groups, IDP groups and workspace/enterprise
roles through the Slack Web, Admin and SCIM APIs one page at a time, and
emits normalized resources, entitlements and grants for an external
identity-governance pipeline.
"""
