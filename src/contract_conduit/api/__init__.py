"""
contract_conduit.api

HTTP layer (FastAPI app factory, dependencies, routers).
"""
