"""Feature modules for neo-storage.

Each feature keeps its entities (dataclasses and repository protocols) apart
from its services:
- principals: users, teams and memberships
- resources: files and folders
- permissions: grants, templates and the resolver
- quota: the quota ledger
- recycle: delete/restore/purge lifecycle and the expiry sweep
- audit: audit events and the emitter
"""
