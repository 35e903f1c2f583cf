"""
contract_conduit.api.routers

Router modules, one per resource family.
"""
