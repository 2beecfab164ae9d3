"""Core domain package for the replicator.

Core contains provisioning, forwarding, and worker lifecycle logic without
any Service Bus SDK code, keeping the replication rules portable.
"""
