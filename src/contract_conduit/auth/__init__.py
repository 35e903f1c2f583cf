"""
contract_conduit.auth

Authentication/authorization package.

Responsibilities:
- JWT helpers and validation.
- FastAPI auth dependencies (Principal, role checks, ownership checks).
"""

# Package marker.
