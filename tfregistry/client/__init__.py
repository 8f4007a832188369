"""Clients for the services the registry depends on.

Currently only the metadata GraphQL API, which knows every organization,
module, provider and version, and where each module's source lives.
"""
