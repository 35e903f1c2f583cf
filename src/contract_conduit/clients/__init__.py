"""
contract_conduit.clients

Outbound integration clients (Slack Web API, transactional email).

Responsibilities:
- Wrap third-party HTTP APIs behind small typed interfaces.
- Translate transport and API failures into typed exceptions.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Services depend on these clients, never on httpx directly, so tests can swap the
# transport with `httpx.MockTransport`.
