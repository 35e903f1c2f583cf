"""
contract_conduit.cma

Pure CMA calculations: field extraction, statistics, adjustments, sections, timeline.
"""
