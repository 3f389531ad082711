"""Tenant setup tooling for the Self Service Portal.

This package discovers authentication connections on an Auth0 tenant, creates
the portal's clients, API, rule and management grant, enables the selected
connections for the new clients and emits the deployment env files.
"""
