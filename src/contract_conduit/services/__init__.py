"""
contract_conduit.services

Service layer between routers and repositories.

Responsibilities:
- Transaction lifecycle (Slack provisioning, archive/restore).
- Closing-reminder processing and its background scheduler.
- CMA sharing (public links, share emails).
- Activity timeline logging.
"""

# Package marker.
